"""
Live session documents.

The host's browser owns the document and overwrites it wholesale; there is
no merge and no version check, so of two concurrent saves the one that
reaches the database last wins. Authorization is by possession of the
session's write key, with a narrow exception for players editing only
their own entry (see ``session_doc.self_edit_error``).

Documents are stored exactly as sent, so a save followed by a read returns
the same document; a document that is not already canonical (see
``session_doc.canonical_doc``) is rejected rather than rewritten.

Every accepted save is pushed to the ``session_<id>`` Socket.IO room.
"""
import secrets

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from trio_tracker.app import db, socketio
from trio_tracker.auth_utils import secrets_match
from trio_tracker.errors import (
    Conflict, DiscordPostError, ConfigurationError, NotFound, PermissionDenied,
    SessionCodeAllocationError, ValidationError,
)
from trio_tracker.models import (
    Season, SeasonPlayerStats, SessionPost, SessionRpDelta, TrackerSession,
)
from trio_tracker.services import discord, rp_ledger
from trio_tracker.services.session_codes import allocate_session_code
from trio_tracker.services.session_doc import canonical_doc, empty_doc, self_edit_error
from trio_tracker.time_utils import parse_entry_date, today_local, utcnow_naive


def session_room(session_id):
    return f'session_{session_id}'


def emit_session_update(session, reason='saved'):
    socketio.emit('session_update', {
        'session_id': session.id,
        'reason': reason,
        'status': session.status,
        'doc': session.doc,
        'updated_at': session.updated_at.isoformat() if session.updated_at else None,
    }, room=session_room(session.id))


def get_session_or_404(session_id):
    session = db.session.get(TrackerSession, session_id)
    if not session:
        raise NotFound('Session not found')
    return session


def get_session_by_code(code):
    normalized = str(code or '').strip()
    if not normalized.isdigit() or len(normalized) != 6:
        raise ValidationError('Session code must be 6 digits')
    session = TrackerSession.query.filter_by(session_code=normalized, status='active').first()
    if not session:
        raise NotFound('Session not found')
    return session


def _resolve_season(season_number):
    """Prefer the active season with this number, then the most recent one."""
    season = Season.query.filter_by(season_number=season_number, is_active=True).first()
    if season:
        return season
    return Season.query.filter_by(
        season_number=season_number,
    ).order_by(Season.created_at.desc()).first()


def create_session(season_number, host, raw_doc):
    try:
        season_number = int(season_number)
    except (TypeError, ValueError):
        raise ValidationError('Season number must be a positive integer') from None
    if season_number <= 0:
        raise ValidationError('Season number must be a positive integer')

    doc, error = canonical_doc(raw_doc if raw_doc is not None else empty_doc())
    if error:
        raise ValidationError(error)

    try:
        code = allocate_session_code(current_app.config.get('SESSION_CODE_MAX_ATTEMPTS', 10))
    except SessionCodeAllocationError as exc:
        current_app.logger.error('Session code allocation failed: %s', exc.message)
        raise
    season = _resolve_season(season_number)
    session = TrackerSession(
        session_code=code,
        season_number=season_number,
        season_id=season.id if season else None,
        host_user_id=host.id if host else None,
        write_key=secrets.token_urlsafe(32),
    )
    session.doc = doc
    db.session.add(session)
    db.session.commit()
    return session


def save_session(session, raw_doc, write_key=None, player_id_updating=None, actor=None):
    """Overwrite the session document.

    A matching write key allows any document. Otherwise `player_id_updating`
    must name the authenticated actor and the change must be limited to that
    player's own entry.
    """
    if session.status != 'active':
        raise Conflict('Session has ended')

    doc, error = canonical_doc(raw_doc)
    if error:
        raise ValidationError(error)

    if write_key:
        if not secrets_match(session.write_key, write_key):
            raise PermissionDenied('Invalid write key')
    elif player_id_updating:
        if actor is None or actor.id != player_id_updating:
            raise PermissionDenied('Players may only update their own entry')
        edit_error = self_edit_error(session.doc, doc, actor.id)
        if edit_error:
            raise PermissionDenied(edit_error)
    else:
        raise PermissionDenied('Write key required')

    session.doc = doc
    session.updated_at = utcnow_naive()
    db.session.commit()
    emit_session_update(session)
    return session


def require_write_key(session, write_key):
    if not secrets_match(session.write_key, write_key):
        raise PermissionDenied('Invalid write key')


def _season_for_session(session):
    season = db.session.get(Season, session.season_id) if session.season_id else None
    if season is None:
        season = _resolve_season(session.season_number)
    if season is None:
        raise NotFound('Season not found for this session')
    return season


def _try_post_to_discord(content):
    """Best-effort webhook delivery. Returns (posted, error message)."""
    try:
        discord.post_to_webhook(
            current_app.config.get('DISCORD_WEBHOOK_URL'),
            content,
            timeout=current_app.config.get('DISCORD_TIMEOUT_SECONDS', 10),
        )
    except (DiscordPostError, ConfigurationError, ValidationError) as exc:
        current_app.logger.warning('Discord post failed: %s', exc.message)
        return False, exc.message
    return True, None


def end_session(session, post_to_discord=False):
    """Write per-player season stats, register membership and close the session.

    Failures are collected per player; players that succeed are kept.
    """
    if session.status != 'active':
        raise Conflict('Session has already ended')
    season = _season_for_session(session)
    doc = session.doc
    results = {'stats_inserted': 0, 'members_registered': 0, 'errors': []}

    for player in doc.get('players', []):
        name = player.get('name') or '(no name)'
        user_id = player.get('userId')
        if not user_id:
            results['errors'].append(f'Skipped {name}: not a registered user')
            continue
        try:
            db.session.add(SeasonPlayerStats(
                season_id=season.id,
                user_id=user_id,
                session_id=session.id,
                games=player.get('games', 0),
                total_damage=player.get('totalDamage', 0),
                total_kills=player.get('totalKills', 0),
                one_k_games=player.get('oneKGames', 0),
                two_k_games=player.get('twoKGames', 0),
                donuts=player.get('donuts', 0),
                total_rp=player.get('totalRP', 0),
            ))
            registered = rp_ledger.ensure_member(season.id, user_id)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.warning('Failed to save stats for %s: %s', name, exc)
            results['errors'].append(f'Failed to save stats for {name}')
            continue
        results['stats_inserted'] += 1
        if registered:
            results['members_registered'] += 1

    session.status = 'ended'
    session.ended_at = utcnow_naive()
    session.updated_at = session.ended_at
    db.session.commit()
    emit_session_update(session, reason='ended')

    discord_posted = False
    if post_to_discord:
        summary = discord.format_session_summary(doc, session.season_number)
        discord_posted, discord_error = _try_post_to_discord(summary)
        if discord_error:
            results['errors'].append('Failed to post to Discord')

    results['discord_posted'] = discord_posted
    return results


def post_session(session, actor, raw_post_date=None):
    """Record the session's RP as posted, then announce it on Discord.

    Stats are committed before the webhook call; a Discord failure is
    reported but does not undo them.
    """
    post_date = parse_entry_date(raw_post_date, default=today_local())
    if post_date is None:
        raise ValidationError('Post date must be a valid YYYY-MM-DD date')

    season = _season_for_session(session)
    doc = session.doc
    summary = discord.format_session_summary(doc, session.season_number)

    post = SessionPost(
        session_id=session.id,
        season_id=season.id,
        posted_by=actor.id if actor else None,
        post_date=post_date,
        summary_text=summary,
    )
    db.session.add(post)

    snapshots_written = 0
    for player in doc.get('players', []):
        user_id = player.get('userId')
        if not user_id:
            continue
        rp_ledger.ensure_member(season.id, user_id)
        delta = int(player.get('totalRP') or 0)
        if delta == 0:
            continue
        post.deltas.append(SessionRpDelta(user_id=user_id, delta_rp=delta))
        rp_ledger.merge_snapshot(
            season.id, user_id, post_date, delta,
            posted_by=actor.id if actor else None,
            session_id=session.id,
        )
        snapshots_written += 1
    db.session.commit()

    discord_posted, discord_error = _try_post_to_discord(summary)
    if discord_posted:
        post.discord_posted = True
        db.session.commit()

    return {
        'post': post.to_dict(),
        'snapshots_written': snapshots_written,
        'discord_posted': discord_posted,
        'discord_error': discord_error,
    }
