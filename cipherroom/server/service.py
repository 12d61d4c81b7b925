"""
Chat service: the relay's event handlers, independent of the transport.

The Socket.IO layer calls one method per inbound event with the connection's
session id. The service owns the SessionRegistry and hands it to the directory,
key manager, relay and presence broadcaster; nothing else mutates it.

Session lifecycle:
    connect()            Disconnected -> Connected (no room)
    login()/enter_room() Connected -> InRoom(room, keys)
    enter_room()         InRoom(a, keys) -> InRoom(b, new keys)
    disconnect()         any -> Disconnected

Room entry is two-phase. Phase 1 generates keys with no registry lock held;
phase 2 commits the new Session under the lock, and only if the connection is
still open. Each session's events are handled one at a time (per-session lock)
so a slow key generation holds back that session only.
"""

import logging
from dataclasses import replace
from threading import Lock
from typing import Any, Dict, Optional

from cipherroom.common.errors import (
    AuthenticationError,
    DecryptionError,
    KeyGenerationError,
    ProtocolError,
)
from cipherroom.common.protocol import (
    EventType,
    parse_activity,
    parse_compose,
    parse_enter_room,
    parse_login,
)
from cipherroom.server.auth import Authenticator
from cipherroom.server.directory import RoomDirectory
from cipherroom.server.emitter import Emitter
from cipherroom.server.keys import KeyExchangeManager, KeyMode
from cipherroom.server.presence import PresenceBroadcaster
from cipherroom.server.registry import Session, SessionRegistry
from cipherroom.server.relay import MessageRelay


logger = logging.getLogger(__name__)


class ChatService:
    """Handles connect, login, enterRoom, message, encmessage, activity and disconnect."""

    def __init__(self, emitter: Emitter, keys: Optional[KeyExchangeManager] = None,
                 authenticator: Optional[Authenticator] = None, relay_options: Optional[Dict[str, Any]] = None,
                 require_login: bool = False):
        self.registry = SessionRegistry()
        self.directory = RoomDirectory(self.registry)
        self.emitter = emitter
        self.keys = keys or KeyExchangeManager()
        self.authenticator = authenticator or Authenticator()
        self.require_login = require_login
        self.presence = PresenceBroadcaster(self.directory, emitter)
        self.relay = MessageRelay(self.directory, emitter, mode=self.keys.mode, **(relay_options or {}))

        self._locks_guard = Lock()
        self._session_locks: Dict[str, Lock] = {}

    def _session_lock(self, session_id: str) -> Optional[Lock]:
        """
        The session's event lock, or None once the connection is gone.

        Looked up and created under the same guard disconnect() drops it with,
        so a late event never leaves a lock behind.
        """
        with self._locks_guard:
            lock = self._session_locks.get(session_id)
            if lock is None:
                if not self.registry.is_connected(session_id):
                    return None
                lock = self._session_locks[session_id] = Lock()
            return lock

    def _drop_session_lock(self, session_id: str) -> None:
        with self._locks_guard:
            self._session_locks.pop(session_id, None)

    def _error(self, session_id: str, event: EventType, text: str) -> None:
        self.emitter.emit(event, text, to=session_id)

    # Connection lifecycle

    def connect(self, session_id: str) -> None:
        self.registry.connect(session_id)
        logger.info(f"Session {session_id} connected")

    def disconnect(self, session_id: str) -> None:
        """
        Remove the session and tell its room. Always runs to completion, even
        for connections that never joined a room.
        """
        removed = self.registry.disconnect(session_id)
        self._drop_session_lock(session_id)

        if removed is not None and removed.room is not None:
            self.presence.announce_leave(removed, removed.room, disconnected=True)
            self.presence.send_room_list()

        logger.info(f"Session {session_id} disconnected")

    # Authentication

    def login(self, session_id: str, data: Any) -> bool:
        """
        Check credentials; on success register the session and, if the
        payload names a room, enter it.

        Returns: True if the login succeeded
        """
        try:
            request = parse_login(data)
        except ProtocolError as e:
            logger.warning(f"[{session_id}] Bad login payload: {e}")
            self._error(session_id, EventType.LOGIN_ERROR, "Authentication failed. Please check your credentials.")
            return False

        try:
            self.authenticator.authenticate(request.name, request.password)
        except AuthenticationError as e:
            logger.warning(f"[{session_id}] Login failed for '{request.name}'")
            self._error(session_id, EventType.LOGIN_ERROR, str(e))
            return False

        lock = self._session_lock(session_id)
        if lock is None:
            logger.debug(f"[{session_id}] login after disconnect ignored")
            return False

        with lock:
            current = self.registry.find(session_id)
            if current is None:
                current = Session(session_id=session_id, display_name=request.name, authenticated=True)
            else:
                current = replace(current, display_name=request.name, authenticated=True)
            committed, previous = self.registry.commit_if_connected(current)
            if not committed:
                return False
            logger.info(f"[{session_id}] Logged in as '{request.name}'")

            # Renamed in place; entering a new room sends its own rosters
            renamed = previous is not None and previous.display_name != request.name
            if renamed and current.room is not None and current.room != request.room:
                self.presence.send_roster(current.room)

            if request.room:
                return self._enter_room_locked(session_id, request.name, request.room)
        return True

    # Rooms

    def enter_room(self, session_id: str, data: Any) -> bool:
        """
        Leave the current room (if any), issue new keys, join the new room.

        Returns: True if the session is now in the requested room
        """
        try:
            request = parse_enter_room(data)
        except ProtocolError as e:
            logger.warning(f"[{session_id}] Bad enterRoom payload: {e}")
            return False

        lock = self._session_lock(session_id)
        if lock is None:
            logger.debug(f"[{session_id}] enterRoom after disconnect ignored")
            return False

        with lock:
            if self.require_login:
                current = self.registry.find(session_id)
                if current is None or not current.authenticated:
                    logger.warning(f"[{session_id}] enterRoom before login")
                    self._error(session_id, EventType.ROOM_ERROR, "Please log in before entering a room.")
                    return False
            return self._enter_room_locked(session_id, request.name, request.room)

    def _enter_room_locked(self, session_id: str, name: str, room: str) -> bool:
        # Phase 1: slow key generation, registry untouched
        try:
            issued = self.keys.generate(session_id, room)
        except KeyGenerationError as e:
            logger.error(f"[{session_id}] Could not enter '{room}': {e}")
            self._error(session_id, EventType.ROOM_ERROR, f"Could not enter {room}: key generation failed.")
            return False

        # Phase 2: commit
        current = self.registry.find(session_id)
        if current is None:
            current = Session(session_id=session_id, display_name=name)
        updated = replace(current, display_name=name).with_room(room, issued.public_key, issued.private_key)

        committed, previous = self.registry.commit_if_connected(updated)
        if not committed:
            logger.info(f"[{session_id}] Disconnected during key generation; discarding keys for '{room}'")
            return False

        if previous is not None and previous.room is not None and previous.room != room:
            self.presence.announce_leave(previous, previous.room)

        if issued.private_pem is not None:
            self.emitter.emit(EventType.PKEY, issued.private_pem, to=session_id)

        self.presence.announce_join(updated)
        self.presence.send_room_list()
        return True

    # Messages

    def _sender(self, session_id: str) -> Optional[Session]:
        session = self.registry.find(session_id)
        if session is None or session.room is None:
            logger.debug(f"[{session_id}] Message from a session with no room ignored")
            return None
        return session

    def message(self, session_id: str, data: Any) -> int:
        """Plaintext relay. Returns the number of envelopes sent."""
        try:
            request = parse_compose(data, EventType.MESSAGE)
        except ProtocolError as e:
            logger.warning(f"[{session_id}] Bad message payload: {e}")
            return 0

        lock = self._session_lock(session_id)
        if lock is None:
            return 0

        with lock:
            sender = self._sender(session_id)
            if sender is None:
                return 0
            return self.relay.relay_plain(sender, request.name, request.text)

    def encmessage(self, session_id: str, data: Any) -> int:
        """Encrypted relay. Returns the number of envelopes sent."""
        try:
            request = parse_compose(data, EventType.ENC_MESSAGE)
        except ProtocolError as e:
            logger.warning(f"[{session_id}] Bad encmessage payload: {e}")
            return 0

        lock = self._session_lock(session_id)
        if lock is None:
            return 0

        with lock:
            sender = self._sender(session_id)
            if sender is None:
                return 0
            try:
                return self.relay.relay_encrypted(sender, request.name, request.text)
            except DecryptionError as e:
                logger.error(f"[{session_id}] Relay aborted, decryption failed: {e}")
                return 0

    def activity(self, session_id: str, data: Any) -> None:
        try:
            name = parse_activity(data)
        except ProtocolError as e:
            logger.debug(f"[{session_id}] Bad activity payload: {e}")
            return

        session = self.registry.find(session_id)
        if session is not None:
            self.presence.activity(session, name)

    @property
    def key_mode(self) -> KeyMode:
        return self.keys.mode
