"""
CipherRoom: a room-scoped chat relay with per-session RSA keys.

Packages:
- common: event names, envelopes, errors
- crypto: RSA-OAEP key pairs
- server: session registry, rooms, key exchange, relay, presence, Socket.IO app
- client: console client that decrypts messages locally
"""

__version__ = "1.0.0"
