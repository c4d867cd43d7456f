"""auth/ -- Credential store, password hashing and bearer-token lifecycle.

Layer rule: auth/ imports only stdlib + third-party libraries (plus fastapi
in dependencies.py). It does NOT import from api/ or core/.
api/ and main.py import from auth/, not the other way around.
"""
