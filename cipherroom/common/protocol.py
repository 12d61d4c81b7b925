"""
Event definitions for the CipherRoom relay.

Defines the named Socket.IO events exchanged between clients and the relay,
dataclasses for the outbound envelopes, validation of inbound payloads, and the
transport-safe encodings used to carry RSA ciphertext inside JSON.

Ciphertext encodings:
    json-array: JSON text of the ciphertext byte values, e.g. "[12,255,3]".
                This is what browser clients feed to `new Uint8Array(...)`.
    base64:     Standard base64 of the ciphertext bytes.
"""

from dataclasses import dataclass, asdict, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
import base64
import binascii
import json

from cipherroom.common.errors import ProtocolError


ADMIN_NAME = "Admin"


class EventType(Enum):
    """Socket.IO event names, inbound and outbound."""

    LOGIN = "login"
    ENTER_ROOM = "enterRoom"
    MESSAGE = "message"
    ENC_MESSAGE = "encmessage"
    ACTIVITY = "activity"
    PKEY = "pkey"
    USER_LIST = "userList"
    ROOM_LIST = "roomList"
    LOGIN_ERROR = "loginError"
    ROOM_ERROR = "roomError"

    def __str__(self) -> str:
        return self.value


class CiphertextEncoding(Enum):
    """Transport encodings for ciphertext bytes."""

    JSON_ARRAY = "json-array"
    BASE64 = "base64"

    def __str__(self) -> str:
        return self.value


@dataclass
class ChatLine:
    """
    One chat line as delivered to clients.

    Used for both `message` (plaintext) and `encmessage` (encoded ciphertext)
    events; the `text` field carries whichever applies.

    Fields:
        name: Sender display name, or "Admin" for relay notices
        text: Plaintext or encoded ciphertext
        time: Wall-clock time formatted at relay time (e.g. "3:04:05 PM")
    """

    name: str
    text: str
    time: str

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)


@dataclass
class RosterEntry:
    """One user in a `userList` payload."""

    id: str
    name: str
    room: Optional[str]

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UserList:
    """Room roster refresh."""

    users: List[RosterEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"users": [u.to_dict() for u in self.users]}


@dataclass
class RoomList:
    """Active room list refresh."""

    rooms: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"rooms": list(self.rooms)}


@dataclass
class LoginRequest:
    """Inbound `login` payload. `room` is optional."""

    name: str
    password: str
    room: Optional[str] = None


@dataclass
class EnterRoomRequest:
    """Inbound `enterRoom` payload."""

    name: str
    room: str


@dataclass
class ComposeRequest:
    """Inbound `message` / `encmessage` payload."""

    name: str
    text: str


def format_time(now: Optional[datetime] = None) -> str:
    """
    Format a timestamp as hour:minute:second with an AM/PM suffix.

    Example:
        >>> format_time(datetime(2024, 1, 1, 15, 4, 5))
        '3:04:05 PM'
    """
    now = now or datetime.now()
    hour = now.hour % 12 or 12
    return f"{hour}:{now:%M:%S} {now:%p}"


def build_msg(name: str, text: str, now: Optional[datetime] = None) -> ChatLine:
    """Build a chat line stamped with the current time."""
    return ChatLine(name=name, text=text, time=format_time(now))


def _require_str(data: Dict[str, Any], key: str, allow_empty: bool = False) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ProtocolError(f"Field '{key}' must be a string, got {type(value).__name__}")
    if key in ("name", "room"):
        value = value.strip()
    if not value and not allow_empty:
        raise ProtocolError(f"Field '{key}' cannot be empty")
    return value


def _require_dict(data: Any, event: EventType) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ProtocolError(f"'{event}' payload must be an object, got {type(data).__name__}")
    return data


def parse_login(data: Any) -> LoginRequest:
    """
    Validate an inbound `login` payload. An empty or blank room counts as no room.

    Raises:
        ProtocolError: If name or password is missing, or room has the wrong type
    """
    data = _require_dict(data, EventType.LOGIN)
    room = data.get("room")
    if room is not None:
        room = _require_str(data, "room", allow_empty=True) or None
    return LoginRequest(
        name=_require_str(data, "name"),
        password=_require_str(data, "password", allow_empty=True),
        room=room,
    )


def parse_enter_room(data: Any) -> EnterRoomRequest:
    """Validate an inbound `enterRoom` payload."""
    data = _require_dict(data, EventType.ENTER_ROOM)
    return EnterRoomRequest(name=_require_str(data, "name"), room=_require_str(data, "room"))


def parse_compose(data: Any, event: EventType = EventType.MESSAGE) -> ComposeRequest:
    """Validate an inbound `message` or `encmessage` payload."""
    data = _require_dict(data, event)
    return ComposeRequest(name=_require_str(data, "name"), text=_require_str(data, "text"))


def parse_activity(data: Any) -> str:
    """The `activity` payload is the bare display name."""
    if not isinstance(data, str) or not data.strip():
        raise ProtocolError("'activity' payload must be a non-empty string")
    return data.strip()


def encode_ciphertext(ciphertext: bytes, encoding: CiphertextEncoding = CiphertextEncoding.JSON_ARRAY) -> str:
    """
    Encode raw ciphertext bytes for transport inside a JSON envelope.

    Example:
        >>> encode_ciphertext(b"\\x01\\xff")
        '[1,255]'
        >>> encode_ciphertext(b"\\x01\\xff", CiphertextEncoding.BASE64)
        'Af8='
    """
    if not isinstance(ciphertext, bytes):
        raise TypeError(f"ciphertext must be bytes, got {type(ciphertext)}")

    if encoding is CiphertextEncoding.BASE64:
        return base64.b64encode(ciphertext).decode("ascii")
    return json.dumps(list(ciphertext), separators=(",", ":"))


def decode_ciphertext(text: str, encoding: CiphertextEncoding = CiphertextEncoding.JSON_ARRAY) -> bytes:
    """
    Decode a transport-encoded ciphertext back into raw bytes.

    Raises:
        ProtocolError: If the text is not a valid encoding
    """
    if not isinstance(text, str):
        raise ProtocolError(f"Encoded ciphertext must be a string, got {type(text).__name__}")

    if encoding is CiphertextEncoding.BASE64:
        try:
            return base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ProtocolError(f"Invalid base64 ciphertext: {e}") from e

    try:
        values = json.loads(text)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid ciphertext array: {e}") from e
    if not isinstance(values, list):
        raise ProtocolError("Ciphertext array must be a JSON list")
    try:
        return bytes(values)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Ciphertext array must hold byte values: {e}") from e
