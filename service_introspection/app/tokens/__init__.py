"""
Access token package.

Tokens are compact JWE strings encrypted with a key derived from a secret
phrase shared with the issuing node. ``codec`` decrypts and validates them
into ``models.AuthorizationClaims``.
"""
