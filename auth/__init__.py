"""auth/ -- The TokenGate credential core.

Password hashing, token issuance and verification, and the CredentialService
that orchestrates register / login / validate / refresh over a user repository.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/. Configuration values are passed in by
the caller; api/ imports from auth/, not the other way around.
"""
