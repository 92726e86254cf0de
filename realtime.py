"""
Live chat connections.

A client opens the socket at /ws and must first send {"type": "auth", "token"}.
Until then the connection has no user and nothing is pushed to it. Each user
has at most one registered connection; authenticating again from another
connection replaces the old one.
"""
import json
import threading
from flask import current_app, request
from flask_socketio import send
from flask_jwt_extended import decode_token
from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError
from extensions import socketio
from security import identity_from_claims


class SocketTransport:
    """Sends JSON frames to one Socket.IO session."""

    def __init__(self, server):
        self.server = server

    def is_open(self, sid):
        return self.server.server.manager.is_connected(sid, '/')

    def send(self, sid, payload):
        self.server.send(payload, json=True, to=sid)


class ConnectionRegistry:
    """
    user id <-> session id, guarded by a lock since the socket handlers and
    the HTTP routes that push messages run on different threads.
    """

    def __init__(self, transport):
        self.transport = transport
        self._lock = threading.Lock()
        self._by_user = {}
        self._by_sid = {}

    def register(self, user_id, sid):
        """Binds ``sid`` to ``user_id``. Returns the session it replaced, if any."""
        with self._lock:
            previous_user = self._by_sid.pop(sid, None)
            if previous_user is not None and self._by_user.get(previous_user) == sid:
                del self._by_user[previous_user]

            replaced = self._by_user.get(user_id)
            if replaced is not None:
                self._by_sid.pop(replaced, None)

            self._by_user[user_id] = sid
            self._by_sid[sid] = user_id
            return replaced

    def unregister(self, sid):
        with self._lock:
            user_id = self._by_sid.pop(sid, None)
            if user_id is not None and self._by_user.get(user_id) == sid:
                del self._by_user[user_id]
            return user_id

    def lookup(self, user_id):
        with self._lock:
            return self._by_user.get(user_id)

    def __len__(self):
        with self._lock:
            return len(self._by_user)

    def deliver_or_drop(self, user_id, payload):
        """
        Fire-and-forget push. True when the frame was handed to an open
        connection; False when the user has none and the frame is dropped.
        """
        sid = self.lookup(user_id)
        if sid is None or not self.transport.is_open(sid):
            return False
        self.transport.send(sid, payload)
        return True


def get_registry(app=None):
    app = app or current_app
    return app.extensions['connections']


def init_realtime(app):
    app.extensions['connections'] = ConnectionRegistry(SocketTransport(socketio))


def push_new_message(message):
    delivered = get_registry().deliver_or_drop(message.receiver_id, {
        'type': 'new_message',
        'message': message.to_dict(),
    })
    if not delivered:
        current_app.logger.debug("User %s offline, message %s not pushed",
                                 message.receiver_id, message.id)
    return delivered


# ==========================================
#  SOCKET EVENTS
# ==========================================
def _authenticate(token):
    if not token:
        return None
    try:
        return identity_from_claims(decode_token(token))
    except (JWTExtendedException, PyJWTError, KeyError, ValueError):
        return None


def handle_frame(frame):
    if not isinstance(frame, dict):
        return

    if frame.get('type') == 'auth':
        identity = _authenticate(frame.get('token'))
        if identity is None:
            send({'type': 'auth_error'}, json=True)
            return
        get_registry().register(identity.id, request.sid)
        current_app.logger.info("Socket %s authenticated as user %s", request.sid, identity.id)
        send({'type': 'auth_success'}, json=True)


@socketio.on('json')
def on_json(frame):
    handle_frame(frame)


@socketio.on('message')
def on_message(raw):
    # Plain text frames carrying JSON, as sent by a bare WebSocket client.
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            current_app.logger.warning("Ignoring malformed socket frame from %s", request.sid)
            return
    handle_frame(raw)


@socketio.on('disconnect')
def on_disconnect(*args):
    user_id = get_registry().unregister(request.sid)
    if user_id is not None:
        current_app.logger.info("User %s disconnected", user_id)
