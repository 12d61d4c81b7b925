"""
Presence broadcaster.

Turns room membership changes into notices: Admin chat lines, the room's
`userList` and the global `roomList`. Rosters are computed from the registry at
call time, so callers must commit the registry change first.
"""

import logging
from typing import Optional

from cipherroom.common.protocol import ADMIN_NAME, EventType, build_msg
from cipherroom.server.directory import RoomDirectory
from cipherroom.server.emitter import Emitter
from cipherroom.server.registry import Session


logger = logging.getLogger(__name__)


class PresenceBroadcaster:
    """Emits join/leave notices, roster refreshes and room list refreshes."""

    def __init__(self, directory: RoomDirectory, emitter: Emitter, admin_name: str = ADMIN_NAME):
        self.directory = directory
        self.emitter = emitter
        self.admin_name = admin_name

    def _notice(self, text: str):
        return build_msg(self.admin_name, text).to_dict()

    def _room_targets(self, room: str, exclude_id: Optional[str] = None):
        return [s.session_id for s in self.directory.list_by_room(room) if s.session_id != exclude_id]

    def send_roster(self, room: str) -> None:
        """Send the room's current roster to everyone in it."""
        self.emitter.emit_many(EventType.USER_LIST, self.directory.roster(room).to_dict(), self._room_targets(room))

    def send_room_list(self) -> None:
        """Send the active room list to every connection."""
        self.emitter.emit(EventType.ROOM_LIST, self.directory.room_list().to_dict())

    def announce_leave(self, session: Session, left_room: str, disconnected: bool = False) -> None:
        """
        Tell `left_room` that `session` is gone and refresh its roster.

        Must be called after the registry no longer lists the session in
        `left_room`.
        """
        if disconnected:
            text = f"{session.display_name} has left the chat."
        else:
            text = f"{session.display_name} has left the room."
        self.emitter.emit_many(EventType.MESSAGE, self._notice(text), self._room_targets(left_room))
        self.send_roster(left_room)
        logger.info(f"{session.display_name} ({session.session_id}) left '{left_room}'")

    def announce_join(self, session: Session) -> None:
        """Welcome the joiner, tell the room, refresh the roster."""
        room = session.room
        self.emitter.emit(EventType.MESSAGE, self._notice(f"Welcome to {room}."), to=session.session_id)
        self.emitter.emit_many(
            EventType.MESSAGE,
            self._notice(f"{session.display_name} has joined the room."),
            self._room_targets(room, exclude_id=session.session_id),
        )
        self.send_roster(room)
        logger.info(f"{session.display_name} ({session.session_id}) joined '{room}'")

    def activity(self, session: Session, name: str) -> None:
        """Relay a typing indicator to the rest of the session's room."""
        if session.room is None:
            return
        self.emitter.emit_many(EventType.ACTIVITY, name, self._room_targets(session.room, exclude_id=session.session_id))
