"""
asgi.py -- ASGI entry point for Gatekeeper.

Run with:  uvicorn asgi:app --reload

Settings are read from the environment (and .env) at import time. A missing
DATABASE_URL or AUTH_SECRET makes the import fail, so uvicorn exits before
binding. python main.py does the same with a cleaner message, a database
check before binding, and the force-exit watchdog.
"""

from api.main import create_app

app = create_app()
