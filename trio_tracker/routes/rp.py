"""Live RP ledger endpoints."""
from flask import Blueprint, request, jsonify
from trio_tracker.auth_utils import login_required
from trio_tracker.services import rp_ledger

rp_bp = Blueprint('rp', __name__)


def _json_payload():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return None
    return data


@rp_bp.route('/entries', methods=['POST'])
@login_required
def add_entry():
    data = _json_payload()
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400
    season_id = str(data.get('season_id') or '').strip()
    if not season_id:
        return jsonify({'error': 'Season ID is required'}), 400
    if 'delta_rp' not in data:
        return jsonify({'error': 'RP delta is required'}), 400

    season = rp_ledger.get_season_or_404(season_id)
    entry = rp_ledger.add_entry(
        season,
        request.current_user,
        str(data.get('user_id') or '').strip() or None,
        data.get('delta_rp'),
        data.get('entry_date'),
    )
    return jsonify({
        'entry': entry.to_dict(),
        'season_total': rp_ledger.season_total(season.id, entry.user_id),
    }), 201


@rp_bp.route('/entries/<int:entry_id>', methods=['DELETE'])
@login_required
def delete_entry(entry_id):
    deleted = rp_ledger.delete_entry(entry_id, request.current_user)
    return jsonify({
        'deleted': deleted,
        'season_total': rp_ledger.season_total(deleted['season_id'], deleted['user_id']),
    })


@rp_bp.route('/undo', methods=['POST'])
@login_required
def undo_last_entry():
    """Delete the caller's (or, for the host, a member's) most recent ledger row."""
    data = _json_payload()
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400
    season_id = str(data.get('season_id') or '').strip()
    if not season_id:
        return jsonify({'error': 'Season ID is required'}), 400

    season = rp_ledger.get_season_or_404(season_id)
    deleted = rp_ledger.undo_last(
        season, request.current_user, str(data.get('user_id') or '').strip() or None,
    )
    return jsonify({
        'deleted': deleted,
        'season_total': rp_ledger.season_total(season.id, deleted['user_id']),
    })


@rp_bp.route('/total', methods=['GET'])
@login_required
def get_total():
    season_id = str(request.args.get('season_id') or '').strip()
    if not season_id:
        return jsonify({'error': 'Season ID is required'}), 400
    season = rp_ledger.get_season_or_404(season_id)
    user_id = str(request.args.get('user_id') or '').strip() or request.current_user.id
    return jsonify({
        'season_id': season.id,
        'user_id': user_id,
        'total': rp_ledger.season_total(season.id, user_id),
    })
