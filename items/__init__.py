"""items/ -- Example owner-scoped resource served by the /api/items routes.

Layer rule: items/ imports only stdlib + SQLAlchemy. It does NOT import from
api/ or auth/.
"""
