"""
CipherRoom Socket.IO server.

This module wires the chat service to Flask-SocketIO:
    1. Loads settings from the environment (.env supported)
    2. Builds the Flask app (optionally serving a static client folder)
    3. Registers one Socket.IO handler per inbound event
    4. Runs the server on the configured port (default 3500)

Server Architecture:
    - Flask-SocketIO in threading mode; each event runs on its own thread
    - All shared state lives in one ChatService instance per app
    - CORS allowlist depends on NODE_ENV (closed in production)

Usage:
    python -m cipherroom.server.server

    To stop the server: Press Ctrl+C
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Tuple

from flask import Flask, request, send_from_directory
from flask_socketio import SocketIO

from cipherroom.config import Settings, load_settings
from cipherroom.server.auth import Authenticator
from cipherroom.server.emitter import SocketIOEmitter
from cipherroom.server.keys import KeyExchangeManager
from cipherroom.server.service import ChatService


logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Set up root logging and quiet the Socket.IO internals."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(asctime)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("engineio").setLevel(logging.WARNING)
    logging.getLogger("socketio").setLevel(logging.WARNING)
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


def create_app(settings: Optional[Settings] = None) -> Tuple[Flask, SocketIO, ChatService]:
    """
    Build the Flask app, its SocketIO server and the chat service.

    Args:
        settings: Resolved settings; loaded from the environment when omitted

    Returns:
        (app, socketio, service)
    """
    settings = settings or load_settings()

    static_dir = Path(settings.static_dir).resolve()
    app = Flask(__name__, static_folder=None)

    socketio = SocketIO(
        app,
        cors_allowed_origins=settings.cors_origins,
        async_mode="threading",
        logger=False,
        engineio_logger=False,
    )

    service = ChatService(
        emitter=SocketIOEmitter(socketio),
        keys=KeyExchangeManager(mode=settings.key_mode),
        authenticator=Authenticator(settings.credentials),
        relay_options={"encoding": settings.encoding, "echo_to_sender": settings.echo_to_sender},
        require_login=settings.require_login,
    )

    if static_dir.is_dir():
        @app.route("/")
        def index():
            return send_from_directory(static_dir, "index.html")

        @app.route("/<path:filename>")
        def static_files(filename):
            return send_from_directory(static_dir, filename)

    @socketio.on("connect")
    def handle_connect(auth=None):
        service.connect(request.sid)

    @socketio.on("disconnect")
    def handle_disconnect(reason=None):
        service.disconnect(request.sid)

    @socketio.on("login")
    def handle_login(data=None):
        service.login(request.sid, data)

    @socketio.on("enterRoom")
    def handle_enter_room(data=None):
        service.enter_room(request.sid, data)

    @socketio.on("message")
    def handle_message(data=None):
        service.message(request.sid, data)

    @socketio.on("encmessage")
    def handle_encmessage(data=None):
        service.encmessage(request.sid, data)

    @socketio.on("activity")
    def handle_activity(data=None):
        service.activity(request.sid, data)

    @socketio.on_error_default
    def handle_error(e):
        # Handler bugs must not take down other sessions
        logger.exception(f"[{request.sid}] Unhandled error in event handler: {e}")

    return app, socketio, service


def main():
    """
    Main entry point for the server.

    Exit codes:
        0: Normal shutdown
        1: Fatal error (bad configuration, port in use, etc.)
    """
    try:
        settings = load_settings()
    except ValueError as e:
        print(f"[!] Invalid configuration: {e}")
        sys.exit(1)

    configure_logging(settings.log_level)
    app, socketio, _ = create_app(settings)

    logger.info(f"Server listening on {settings.host}:{settings.port} "
                f"(key mode: {settings.key_mode}, env: {settings.environment})")
    print(f"[*] CipherRoom server started on {settings.host}:{settings.port}")
    print("[*] Press Ctrl+C to stop the server")

    try:
        socketio.run(app, host=settings.host, port=settings.port, allow_unsafe_werkzeug=True)
    except KeyboardInterrupt:
        logger.info("Server interrupted by user")
        print("\n[*] Server stopped by user")
    except OSError as e:
        logger.critical(f"Socket error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
