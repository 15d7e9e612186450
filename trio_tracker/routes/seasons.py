"""Seasons, membership and the RP progression chart."""
from flask import Blueprint, request, jsonify
from trio_tracker.app import db
from trio_tracker.models import Profile, Season, SeasonRpSnapshot
from trio_tracker.auth_utils import login_required
from trio_tracker.services import rp_ledger
from trio_tracker.services.progression import season_members, season_progression

seasons_bp = Blueprint('seasons', __name__)


def _active_season():
    return Season.query.filter_by(is_active=True).order_by(Season.created_at.desc()).first()


def _season_payload(season, user_id=None):
    data = season.to_dict()
    if user_id:
        data['is_host'] = season.host_user_id == user_id
        data['is_member'] = rp_ledger.is_member(season.id, user_id)
    return data


@seasons_bp.route('/active', methods=['GET'])
@login_required
def get_active_season():
    season = _active_season()
    if not season:
        return jsonify({'error': 'No active season found'}), 404
    return jsonify({'season': _season_payload(season, request.current_user.id)})


@seasons_bp.route('', methods=['POST'])
@login_required
def start_season():
    """Start (or reactivate) a season. Every other season is deactivated."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400

    current = _active_season()
    raw_number = data.get('season_number')
    if raw_number is None:
        season_number = (current.season_number + 1) if current else 1
    else:
        try:
            season_number = int(raw_number)
        except (TypeError, ValueError):
            return jsonify({'error': 'Season number must be a positive integer'}), 400
        if isinstance(raw_number, bool) or season_number <= 0:
            return jsonify({'error': 'Season number must be a positive integer'}), 400

    if current and current.host_user_id != request.current_user.id:
        return jsonify({'error': 'Only the current season host can start a new season'}), 403

    Season.query.filter_by(is_active=True).update({'is_active': False})

    season = Season.query.filter_by(
        season_number=season_number,
    ).order_by(Season.created_at.desc()).first()
    created = season is None
    if created:
        season = Season(
            season_number=season_number,
            host_user_id=request.current_user.id,
            is_active=True,
        )
        db.session.add(season)
        db.session.flush()
    else:
        season.is_active = True
        season.host_user_id = request.current_user.id

    rp_ledger.ensure_member(season.id, request.current_user.id)
    db.session.commit()
    return jsonify({
        'season': _season_payload(season, request.current_user.id),
        'created': created,
    }), 201 if created else 200


@seasons_bp.route('/<season_id>/join', methods=['POST'])
@login_required
def join_season(season_id):
    season = rp_ledger.get_season_or_404(season_id)
    added = rp_ledger.ensure_member(season.id, request.current_user.id)
    db.session.commit()
    return jsonify({
        'message': 'Joined season' if added else 'Already a member',
        'season': _season_payload(season, request.current_user.id),
    })


@seasons_bp.route('/<season_id>/players', methods=['GET'])
@login_required
def get_season_players(season_id):
    season = rp_ledger.get_season_or_404(season_id)
    return jsonify({'players': season_members(season.id)})


@seasons_bp.route('/<season_id>/players', methods=['POST'])
@login_required
def add_season_player(season_id):
    """Host registers another profile as a season member."""
    season = rp_ledger.get_season_or_404(season_id)
    if season.host_user_id != request.current_user.id:
        return jsonify({'error': 'Only the season host can add players'}), 403

    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    user_id = str(data.get('user_id') or '').strip()
    username = str(data.get('username') or '').strip().lower()
    if user_id:
        profile = db.session.get(Profile, user_id)
    elif username:
        profile = Profile.query.filter_by(username=username).first()
    else:
        return jsonify({'error': 'user_id or username is required'}), 400
    if not profile:
        return jsonify({'error': 'User not found'}), 404

    added = rp_ledger.ensure_member(season.id, profile.id)
    db.session.commit()
    return jsonify({
        'message': 'Player added' if added else 'Already a member',
        'players': season_members(season.id),
    }), 201 if added else 200


@seasons_bp.route('/<season_id>/progression', methods=['GET'])
@login_required
def get_progression(season_id):
    season = rp_ledger.get_season_or_404(season_id)
    payload = season_progression(season.id)
    payload['season'] = season.to_dict()
    return jsonify(payload)


@seasons_bp.route('/<season_id>/snapshots', methods=['DELETE'])
@login_required
def reset_snapshots(season_id):
    """Host-only reset of the posted RP chart. Live ledger rows are kept."""
    season = rp_ledger.get_season_or_404(season_id)
    if season.host_user_id != request.current_user.id:
        return jsonify({'error': 'Only the season host can reset the season graph'}), 403
    deleted = SeasonRpSnapshot.query.filter_by(
        season_id=season.id,
    ).delete(synchronize_session=False)
    db.session.commit()
    return jsonify({'message': 'Season graph reset', 'deleted': deleted})
