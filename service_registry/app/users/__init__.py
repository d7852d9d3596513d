"""
User identity package.

Sign-in, registration, unregistration, user lookups and the broker
authorization check. Token signing is delegated to an external authority
through ``token_client``; passwords are bcrypt-hashed via ``hashing``.
"""
