"""
smime_store — S/MIME certificate repository and message-protection engine.

Stores X.509 certificates and their private keys, resolves the right
certificate for a sender or a set of recipients, and produces PKCS#7
signed and enveloped S/MIME payloads.

Storage and signing failures travel on a small Railway-Oriented result
type at adapter boundaries and surface as typed exceptions at the public
operations.
"""

__version__ = "0.1.0"
