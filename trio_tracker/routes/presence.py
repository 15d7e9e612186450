"""Socket.IO handlers: per-session viewer presence and the change-feed room.

Presence is process-local and ephemeral. A viewer joins ``session_<id>``
to receive ``session_update`` pushes and ``presence_sync`` lists.
"""
import threading

from flask import request
from flask_socketio import emit, join_room, leave_room
from trio_tracker.app import db, socketio
from trio_tracker.auth_utils import has_site_access
from trio_tracker.models import TrackerSession
from trio_tracker.services.session_store import session_room

_viewers_lock = threading.Lock()
# session id -> {socket sid: viewer name}
_viewers = {}


def _viewer_list(session_id):
    with _viewers_lock:
        entries = dict(_viewers.get(session_id, {}))
    return [{'id': sid, 'name': name} for sid, name in sorted(entries.items())]


def _broadcast_presence(session_id):
    socketio.emit('presence_sync', {
        'session_id': session_id,
        'viewers': _viewer_list(session_id),
    }, room=session_room(session_id))


def _remove_viewer(sid, session_id=None):
    """Drop `sid` from one session (or all). Returns the session ids it left."""
    left = []
    with _viewers_lock:
        targets = [session_id] if session_id else list(_viewers)
        for target in targets:
            room_viewers = _viewers.get(target)
            if room_viewers and sid in room_viewers:
                del room_viewers[sid]
                left.append(target)
                if not room_viewers:
                    del _viewers[target]
    return left


def reset_presence():
    with _viewers_lock:
        _viewers.clear()


@socketio.on('connect')
def on_connect(auth=None):
    if not has_site_access(request):
        return False
    return None


@socketio.on('join_session')
def on_join_session(data):
    payload = data if isinstance(data, dict) else {}
    session_id = str(payload.get('session_id') or '').strip()
    name = str(payload.get('name') or '').strip()[:40] or 'Guest'
    if not session_id:
        emit('status', {'error': 'Session ID is required'})
        return

    session = db.session.get(TrackerSession, session_id)
    if not session:
        emit('status', {'error': 'Session not found'})
        return

    join_room(session_room(session_id))
    with _viewers_lock:
        _viewers.setdefault(session_id, {})[request.sid] = name
    emit('session_update', {
        'session_id': session.id,
        'reason': 'joined',
        'status': session.status,
        'doc': session.doc,
        'updated_at': session.updated_at.isoformat() if session.updated_at else None,
    })
    _broadcast_presence(session_id)


@socketio.on('leave_session')
def on_leave_session(data):
    payload = data if isinstance(data, dict) else {}
    session_id = str(payload.get('session_id') or '').strip()
    if not session_id:
        return
    leave_room(session_room(session_id))
    if _remove_viewer(request.sid, session_id):
        _broadcast_presence(session_id)


@socketio.on('disconnect')
def on_disconnect(*args):
    for session_id in _remove_viewer(request.sid):
        _broadcast_presence(session_id)
