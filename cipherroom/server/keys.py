"""
Key exchange manager.

Issues a fresh RSA key pair every time a session enters a room. In client-held
mode the private half is exported as PEM for the `pkey` event and not kept; in
server-held mode both halves are kept on the Session so the relay can decrypt.

Key issue is the first half of a two-phase room entry: `generate()` does the
slow RSA work without touching the registry, and the caller commits the
returned IssuedKeys into the registry afterwards.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from cryptography.hazmat.primitives.asymmetric import rsa

from cipherroom.common.errors import KeyGenerationError
from cipherroom.crypto.rsa_keys import RSA_KEY_SIZE, export_private_key_pem, generate_keypair


logger = logging.getLogger(__name__)

KeyGenerator = Callable[[int], Tuple[rsa.RSAPrivateKey, rsa.RSAPublicKey]]


class KeyMode(Enum):
    """Where the session's private key lives."""

    CLIENT_HELD = "client"
    SERVER_HELD = "server"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class IssuedKeys:
    """
    Result of one key generation.

    Fields:
        session_id: Session the keys were generated for
        room: Room the keys are bound to
        public_key: Always present
        private_key: Present only in server-held mode
        private_pem: PKCS#8 PEM for the client, present only in client-held mode
    """

    session_id: str
    room: str
    public_key: rsa.RSAPublicKey
    private_key: Optional[rsa.RSAPrivateKey] = None
    private_pem: Optional[str] = None


class KeyExchangeManager:
    """Generates per-(session, room) key pairs according to the key mode."""

    def __init__(self, mode: KeyMode = KeyMode.CLIENT_HELD, key_size: int = RSA_KEY_SIZE,
                 generator: KeyGenerator = generate_keypair):
        self.mode = mode
        self.key_size = key_size
        self._generator = generator

    def generate(self, session_id: str, room: str) -> IssuedKeys:
        """
        Generate keys for `session_id` entering `room`.

        Raises:
            KeyGenerationError: If the crypto provider fails for any reason
        """
        try:
            private_key, public_key = self._generator(self.key_size)
        except KeyGenerationError:
            raise
        except Exception as e:
            raise KeyGenerationError(f"Key generation failed: {e}") from e

        logger.debug(f"Generated {self.key_size}-bit key pair for {session_id} in '{room}' ({self.mode} mode)")

        if self.mode is KeyMode.SERVER_HELD:
            return IssuedKeys(session_id=session_id, room=room, public_key=public_key, private_key=private_key)

        return IssuedKeys(
            session_id=session_id,
            room=room,
            public_key=public_key,
            private_pem=export_private_key_pem(private_key),
        )
