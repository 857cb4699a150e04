"""auth/ -- Sessions, credentials, and account flows for Exa.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
auth/service.py additionally composes business/ and credits/ stores for
signup and invitation acceptance. It does NOT import from api/ or web/.
api/ and web/ import from auth/, not the other way around.
"""
