"""auth/ -- Authentication and user-account package for CredVault.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/, vault/, audit/, or notify/.
api/ imports from auth/, not the other way around.
"""
