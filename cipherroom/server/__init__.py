"""
Server-side modules for CipherRoom.

This package contains server-side functionality including:
- Session registry and derived room directory
- Per-session key exchange
- Message relay and presence notifications
- The Flask-SocketIO application
"""
