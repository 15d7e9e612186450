"""Live tracker sessions: create, look up, save, end, post."""
from flask import Blueprint, request, jsonify
from trio_tracker.auth_utils import get_optional_user, login_required
from trio_tracker.services import session_store
from trio_tracker.services.session_doc import empty_doc, new_player

sessions_bp = Blueprint('sessions', __name__)


def _json_payload():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return None
    return data


def _write_key_from_request(data):
    header_key = str(request.headers.get('X-Write-Key') or '').strip()
    return header_key or str(data.get('write_key') or data.get('writeKey') or '').strip()


@sessions_bp.route('', methods=['POST'])
@login_required
def create_session():
    """Create a session hosted by the caller. The write key is only returned here."""
    data = _json_payload()
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400
    season_number = data.get('season_number', data.get('seasonNumber'))
    if season_number is None:
        return jsonify({'error': 'Season number is required'}), 400

    host = request.current_user
    raw_doc = data.get('doc')
    if raw_doc is None:
        raw_doc = empty_doc([new_player(name=host.display_name, user_id=host.id)])

    session = session_store.create_session(season_number, host, raw_doc)
    return jsonify({
        'sessionId': session.id,
        'writeKey': session.write_key,
        'sessionCode': session.session_code,
        'session': session.to_dict(),
    }), 201


@sessions_bp.route('', methods=['GET'])
def find_session_by_code():
    code = request.args.get('code', '')
    if not code:
        return jsonify({'error': 'Session code is required'}), 400
    session = session_store.get_session_by_code(code)
    return jsonify({'session': session.to_dict()})


@sessions_bp.route('/<session_id>', methods=['GET'])
def get_session(session_id):
    session = session_store.get_session_or_404(session_id)
    return jsonify({'session': session.to_dict()})


@sessions_bp.route('/<session_id>', methods=['PUT'])
def save_session(session_id):
    """Overwrite the doc. Last write wins."""
    data = _json_payload()
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400
    if 'doc' not in data:
        return jsonify({'error': 'Missing doc'}), 400

    session = session_store.get_session_or_404(session_id)
    player_id_updating = str(
        data.get('player_id_updating') or data.get('playerIdUpdating') or ''
    ).strip() or None
    session = session_store.save_session(
        session,
        data['doc'],
        write_key=_write_key_from_request(data),
        player_id_updating=player_id_updating,
        actor=get_optional_user() if player_id_updating else None,
    )
    return jsonify({'ok': True, 'updated_at': session.updated_at.isoformat()})


@sessions_bp.route('/<session_id>/end', methods=['POST'])
def end_session(session_id):
    data = _json_payload()
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400
    session = session_store.get_session_or_404(session_id)
    session_store.require_write_key(session, _write_key_from_request(data))

    results = session_store.end_session(
        session, post_to_discord=bool(data.get('post_to_discord', data.get('postToDiscord'))),
    )
    return jsonify({'success': True, **results})


@sessions_bp.route('/<session_id>/post', methods=['POST'])
@login_required
def post_session(session_id):
    """Record posted RP snapshots for the session and announce it on Discord."""
    data = _json_payload()
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400
    session = session_store.get_session_or_404(session_id)
    session_store.require_write_key(session, _write_key_from_request(data))

    result = session_store.post_session(
        session, request.current_user, data.get('post_date', data.get('postDate')),
    )
    return jsonify({'success': True, **result}), 201
