"""auth/ -- Identity, verification-code, token and session package for Storefront.

Layer rule: auth/ imports stdlib, third-party libraries, and cache/ (the
identity repository is cache-aside). It does NOT import from api/.
api/ imports from auth/, not the other way around.
"""
