"""
Exception taxonomy for CipherRoom.

Every failure the relay can hit while handling a single session's event maps to
one of these classes. None of them are fatal to the server process; the chat
service catches them at the event boundary and decides whether the session is
told about it (login and room-entry failures) or not (unresolvable recipients,
decryption failures).
"""


class ChatError(Exception):
    """Base class for all relay errors."""
    pass


class ProtocolError(ChatError):
    """Raised when an inbound event payload is malformed."""
    pass


class AuthenticationError(ChatError):
    """Raised when a login attempt does not match the credential table."""
    pass


class KeyGenerationError(ChatError):
    """Raised when the crypto provider fails to produce a key pair."""
    pass


class RecipientUnresolvableError(ChatError):
    """Raised when no other session in the room has a public key."""
    pass


class EncryptionError(ChatError):
    """Raised when plaintext cannot be encrypted under the recipient key."""
    pass


class DecryptionError(ChatError):
    """Raised when ciphertext does not decrypt under the given private key."""
    pass
