"""auth/ -- Authentication package for Gatekeeper.

Layer rule: auth/ imports from core/, mail/ (email hooks only) and cache/
(the engine's session cache). It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
