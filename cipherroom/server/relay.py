"""
Message relay.

Plaintext path:
    message {name, text} -> `message` line to every session in the room.

Encrypted path:
    encmessage {name, text}
        1. Resolve the recipient: the first other session in the sender's room
           holding a public key. None found -> drop silently.
        2. RSA-OAEP(SHA-256) encrypt the UTF-8 text under the recipient key.
        3. Client-held keys: send `encmessage` with the encoded ciphertext to
           the room. Server-held keys: decrypt with the recipient's retained
           private key and send the plaintext as `message`.

Encryption problems never fall back to sending plaintext.
"""

import logging

from cipherroom.common.errors import (
    DecryptionError,
    EncryptionError,
    RecipientUnresolvableError,
)
from cipherroom.common.protocol import (
    CiphertextEncoding,
    EventType,
    build_msg,
    encode_ciphertext,
)
from cipherroom.crypto.rsa_keys import rsa_decrypt, rsa_encrypt
from cipherroom.server.directory import RoomDirectory
from cipherroom.server.emitter import Emitter
from cipherroom.server.keys import KeyMode
from cipherroom.server.registry import Session


logger = logging.getLogger(__name__)


class MessageRelay:
    """Relays plaintext and encrypted chat lines within a room."""

    def __init__(self, directory: RoomDirectory, emitter: Emitter, mode: KeyMode = KeyMode.CLIENT_HELD,
                 encoding: CiphertextEncoding = CiphertextEncoding.JSON_ARRAY, echo_to_sender: bool = True):
        self.directory = directory
        self.emitter = emitter
        self.mode = mode
        self.encoding = encoding
        self.echo_to_sender = echo_to_sender

    def _targets(self, room: str, sender_id: str, include_sender: bool = True):
        return [
            s.session_id for s in self.directory.list_by_room(room)
            if include_sender or s.session_id != sender_id
        ]

    def relay_plain(self, sender: Session, name: str, text: str) -> int:
        """
        Send a plaintext line to the sender's room.

        Returns: number of envelopes emitted (0 when the sender has no room)
        """
        if sender.room is None:
            return 0
        targets = self._targets(sender.room, sender.session_id)
        self.emitter.emit_many(EventType.MESSAGE, build_msg(name, text).to_dict(), targets)
        return len(targets)

    def resolve_recipient(self, sender: Session) -> Session:
        """
        Raises:
            RecipientUnresolvableError: Sender has no room, or no peer with a key
        """
        if sender.room is None:
            raise RecipientUnresolvableError(f"{sender.session_id} is not in a room")
        peer = self.directory.find_peer(sender.room, exclude_id=sender.session_id)
        if peer is None:
            raise RecipientUnresolvableError(f"No keyed peer in '{sender.room}'")
        return peer

    def relay_encrypted(self, sender: Session, name: str, text: str) -> int:
        """
        Encrypt `text` for the sender's room peer and distribute it.

        Dropped (0 envelopes) when no recipient can be resolved or the text
        cannot be encrypted.

        Raises:
            DecryptionError: Server-held mode only, when the retained private
                key does not open the ciphertext
        """
        try:
            recipient = self.resolve_recipient(sender)
        except RecipientUnresolvableError as e:
            logger.debug(f"Dropping message from {sender.session_id}: {e}")
            return 0

        try:
            ciphertext = rsa_encrypt(recipient.public_key, text.encode("utf-8"))
        except EncryptionError as e:
            logger.warning(f"Dropping message from {sender.session_id}: {e}")
            return 0

        if self.mode is KeyMode.SERVER_HELD:
            return self._relay_server_held(sender, recipient, name, ciphertext)

        envelope = build_msg(name, encode_ciphertext(ciphertext, self.encoding)).to_dict()
        targets = self._targets(sender.room, sender.session_id, include_sender=self.echo_to_sender)
        self.emitter.emit_many(EventType.ENC_MESSAGE, envelope, targets)
        return len(targets)

    def _relay_server_held(self, sender: Session, recipient: Session, name: str, ciphertext: bytes) -> int:
        if recipient.private_key is None:
            raise DecryptionError(f"No retained private key for {recipient.session_id}")

        plaintext = rsa_decrypt(recipient.private_key, ciphertext).decode("utf-8")
        targets = self._targets(sender.room, sender.session_id, include_sender=self.echo_to_sender)
        self.emitter.emit_many(EventType.MESSAGE, build_msg(name, plaintext).to_dict(), targets)
        return len(targets)
