"""
CipherRoom console client.

This module implements a Socket.IO client that:
    1. Connects to a CipherRoom server
    2. Optionally logs in, then enters a room
    3. Receives its private key through the `pkey` event
    4. Decrypts incoming `encmessage` lines with that key
    5. Sends each line typed on stdin as an encrypted (or plain) message

The private key is replaced on every room entry; lines encrypted for an
earlier key no longer decrypt and are reported as undecryptable.

Usage:
    python -m cipherroom.client.client --name alice --room lobby

Environment Variables (.env):
    CHAT_URL: Server URL (default: http://localhost:3500)
"""

import argparse
import logging
import os
import sys
from typing import Callable, List, Optional

import socketio
from socketio.exceptions import ConnectionError as SocketIOConnectionError
from dotenv import load_dotenv
from cryptography.hazmat.primitives.asymmetric import rsa

from cipherroom.common.errors import DecryptionError
from cipherroom.common.protocol import ADMIN_NAME, CiphertextEncoding, EventType
from cipherroom.crypto.rsa_keys import decrypt_envelope, load_private_key_pem


logger = logging.getLogger(__name__)


class ChatClient:
    """
    Event handling for one chat participant.

    Incoming lines are handed to `on_line(name, text, time)`; roster and room
    list updates are kept on the instance.
    """

    def __init__(self, name: str, encoding: CiphertextEncoding = CiphertextEncoding.JSON_ARRAY,
                 on_line: Optional[Callable[[str, str, str], None]] = None,
                 sio: Optional[socketio.Client] = None):
        self.name = name
        self.encoding = encoding
        self.on_line = on_line or (lambda who, text, when: print(f"[{when}] {who}: {text}"))
        self.private_key: Optional[rsa.RSAPrivateKey] = None
        self.users: List[dict] = []
        self.rooms: List[str] = []
        self.last_error: Optional[str] = None
        self.sio = sio or socketio.Client()
        self._register()

    def _register(self) -> None:
        self.sio.on(str(EventType.PKEY), self.handle_pkey)
        self.sio.on(str(EventType.MESSAGE), self.handle_message)
        self.sio.on(str(EventType.ENC_MESSAGE), self.handle_encmessage)
        self.sio.on(str(EventType.USER_LIST), self.handle_user_list)
        self.sio.on(str(EventType.ROOM_LIST), self.handle_room_list)
        self.sio.on(str(EventType.ACTIVITY), self.handle_activity)
        self.sio.on(str(EventType.LOGIN_ERROR), self.handle_error)
        self.sio.on(str(EventType.ROOM_ERROR), self.handle_error)

    # Inbound

    def handle_pkey(self, pem: str) -> None:
        try:
            self.private_key = load_private_key_pem(pem)
            logger.debug("Installed new room private key")
        except ValueError as e:
            logger.error(f"Server sent an unusable private key: {e}")
            self.private_key = None

    def handle_message(self, data: dict) -> None:
        self.on_line(data.get("name", ""), data.get("text", ""), data.get("time", ""))

    def handle_encmessage(self, data: dict) -> None:
        sender = data.get("name", "")
        if sender == self.name:
            # Own echo; the plaintext was already shown when sending
            return
        plaintext = self.decrypt(data.get("text", ""))
        if plaintext is None:
            self.on_line(sender, "<undecryptable message>", data.get("time", ""))
            return
        self.on_line(sender, plaintext, data.get("time", ""))

    def decrypt(self, encoded: str) -> Optional[str]:
        """Decrypt an `encmessage` text field, or None if it cannot be opened."""
        if self.private_key is None:
            logger.warning("Encrypted message received before any key")
            return None
        try:
            return decrypt_envelope(self.private_key, encoded, self.encoding)
        except DecryptionError as e:
            logger.warning(f"Could not decrypt message: {e}")
            return None

    def handle_user_list(self, data: dict) -> None:
        self.users = list(data.get("users") or [])

    def handle_room_list(self, data: dict) -> None:
        self.rooms = list(data.get("rooms") or [])

    def handle_activity(self, name: str) -> None:
        logger.debug(f"{name} is typing...")

    def handle_error(self, text: str) -> None:
        self.last_error = text
        self.on_line(ADMIN_NAME, text, "")

    # Outbound

    def connect(self, url: str) -> None:
        self.sio.connect(url)

    def login(self, password: str, room: Optional[str] = None) -> None:
        payload = {"name": self.name, "password": password}
        if room:
            payload["room"] = room
        self.sio.emit(str(EventType.LOGIN), payload)

    def enter_room(self, room: str) -> None:
        self.sio.emit(str(EventType.ENTER_ROOM), {"name": self.name, "room": room})

    def send(self, text: str, encrypted: bool = True) -> None:
        event = EventType.ENC_MESSAGE if encrypted else EventType.MESSAGE
        self.sio.emit(str(event), {"name": self.name, "text": text})

    def typing(self) -> None:
        self.sio.emit(str(EventType.ACTIVITY), self.name)

    def disconnect(self) -> None:
        self.sio.disconnect()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="CipherRoom console client")
    parser.add_argument("--url", default=os.getenv("CHAT_URL", "http://localhost:3500"), help="Server URL")
    parser.add_argument("--name", required=True, help="Display name")
    parser.add_argument("--room", required=True, help="Room to enter")
    parser.add_argument("--password", help="Log in with this password before entering the room")
    parser.add_argument("--plain", action="store_true", help="Send plaintext messages instead of encrypted ones")
    parser.add_argument("--encoding", choices=[e.value for e in CiphertextEncoding],
                        default=os.getenv("CIPHERTEXT_ENCODING", CiphertextEncoding.JSON_ARRAY.value),
                        help="Ciphertext encoding used by the server")
    return parser.parse_args(argv)


def main(argv=None):
    """
    Main client entry point.

    Exit codes:
        0: Normal shutdown
        1: Fatal error
    """
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="[%(asctime)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    args = parse_args(argv)

    client = ChatClient(args.name, encoding=CiphertextEncoding(args.encoding))
    try:
        client.connect(args.url)
    except SocketIOConnectionError as e:
        logger.critical(f"Connection error: {e}")
        sys.exit(1)

    if args.password is not None:
        client.login(args.password, room=args.room)
    else:
        client.enter_room(args.room)

    print(f"[*] Connected to {args.url} as {args.name}; type messages, Ctrl+D to quit")
    try:
        for line in sys.stdin:
            text = line.rstrip("\n")
            if text:
                client.send(text, encrypted=not args.plain)
    except KeyboardInterrupt:
        print("\n[*] Interrupted")
    finally:
        client.disconnect()
        print("[*] Disconnected from server")


if __name__ == "__main__":
    main()
