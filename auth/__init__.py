"""auth/ -- Accounts, sessions, and authorization for Turnstile.

Layer rule: auth/ imports only stdlib + third-party libraries and core/.
It does NOT import from api/. api/ imports from auth/, not the other way around.
The single exception is auth/dependencies.py, which imports fastapi to plug the
session manager into FastAPI's Depends() system.
"""
