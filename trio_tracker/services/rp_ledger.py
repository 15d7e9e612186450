"""
RP accounting.

Two tables with different semantics:

- ``rp_entries`` is the live ledger. Every accepted delta is a new row, even
  when the same player reports twice on one day. Rows only disappear through
  an explicit undo.
- ``season_rp_snapshots`` holds what a host has posted. One row per
  (season, user, post date); posting again on the same day adds onto that
  row. The progression chart reads only from snapshots.

Season totals are summed over the most recent ``RP_SUM_PAGE_LIMIT`` ledger
rows, so a season with more entries than the limit reports a truncated
total.
"""
from flask import current_app

from trio_tracker.app import db
from trio_tracker.errors import NotFound, PermissionDenied, ValidationError
from trio_tracker.models import RpEntry, Season, SeasonPlayer, SeasonRpSnapshot
from trio_tracker.time_utils import parse_entry_date, today_local, utcnow_naive

DEFAULT_SUM_PAGE_LIMIT = 500


def parse_delta(raw_value):
    """Accept a nonzero integer (or an integral string). Floats and bools are rejected."""
    if isinstance(raw_value, bool) or raw_value is None:
        raise ValidationError('RP delta must be a nonzero integer')
    if isinstance(raw_value, int):
        value = raw_value
    elif isinstance(raw_value, str):
        try:
            value = int(raw_value.strip())
        except ValueError:
            raise ValidationError('RP delta must be a nonzero integer') from None
    else:
        raise ValidationError('RP delta must be a nonzero integer')
    if value == 0:
        raise ValidationError('RP delta must be a nonzero integer')
    return value


def get_season_or_404(season_id):
    season = db.session.get(Season, season_id)
    if not season:
        raise NotFound('Season not found')
    return season


def is_member(season_id, user_id):
    return SeasonPlayer.query.filter_by(season_id=season_id, user_id=user_id).first() is not None


def ensure_member(season_id, user_id):
    """Register (season, user) if missing. Returns True when a row was added."""
    if is_member(season_id, user_id):
        return False
    db.session.add(SeasonPlayer(season_id=season_id, user_id=user_id))
    return True


def add_entry(season, actor, user_id, raw_delta, raw_date=None):
    """Append one ledger row. `actor` must be the player or the season host."""
    delta = parse_delta(raw_delta)
    entry_date = parse_entry_date(raw_date, default=today_local())
    if entry_date is None:
        raise ValidationError('Entry date must be a valid YYYY-MM-DD date')

    target_user_id = user_id or actor.id
    if target_user_id != actor.id:
        if season.host_user_id != actor.id:
            raise PermissionDenied('Players may only record their own RP')
        if not is_member(season.id, target_user_id):
            raise ValidationError('Player is not a member of this season')

    ensure_member(season.id, target_user_id)
    entry = RpEntry(
        season_id=season.id,
        user_id=target_user_id,
        entry_date=entry_date,
        delta_rp=delta,
        created_by=actor.id,
    )
    db.session.add(entry)
    db.session.commit()
    return entry


def latest_entry(season_id, user_id):
    return RpEntry.query.filter_by(
        season_id=season_id, user_id=user_id,
    ).order_by(RpEntry.created_at.desc(), RpEntry.id.desc()).first()


def undo_last(season, actor, user_id=None):
    """Delete the most recent ledger row for the player. Returns the deleted row's dict."""
    target_user_id = user_id or actor.id
    if target_user_id != actor.id and season.host_user_id != actor.id:
        raise PermissionDenied('Players may only undo their own RP')
    entry = latest_entry(season.id, target_user_id)
    if not entry:
        raise NotFound('No RP entries to undo')
    payload = entry.to_dict()
    db.session.delete(entry)
    db.session.commit()
    return payload


def delete_entry(entry_id, actor):
    entry = db.session.get(RpEntry, entry_id)
    if not entry:
        raise NotFound('RP entry not found')
    if entry.user_id != actor.id:
        season = db.session.get(Season, entry.season_id)
        if not season or season.host_user_id != actor.id:
            raise PermissionDenied('Players may only delete their own RP')
    payload = entry.to_dict()
    db.session.delete(entry)
    db.session.commit()
    return payload


def _sum_page_limit():
    raw_value = current_app.config.get('RP_SUM_PAGE_LIMIT', DEFAULT_SUM_PAGE_LIMIT)
    try:
        parsed = int(raw_value)
    except (TypeError, ValueError):
        parsed = DEFAULT_SUM_PAGE_LIMIT
    return max(1, parsed)


def season_total(season_id, user_id):
    rows = RpEntry.query.with_entities(RpEntry.delta_rp).filter_by(
        season_id=season_id, user_id=user_id,
    ).order_by(RpEntry.created_at.desc(), RpEntry.id.desc()).limit(_sum_page_limit()).all()
    return sum(int(row.delta_rp or 0) for row in rows)


def merge_snapshot(season_id, user_id, post_date, delta, posted_by=None, session_id=None):
    """Add `delta` onto the day's snapshot row, creating it when absent. Caller commits."""
    snapshot = SeasonRpSnapshot.query.filter_by(
        season_id=season_id, user_id=user_id, post_date=post_date,
    ).first()
    now = utcnow_naive()
    if snapshot:
        snapshot.delta_rp = int(snapshot.delta_rp or 0) + int(delta)
        snapshot.posted_at = now
        snapshot.posted_by = posted_by
        snapshot.posted_session_id = session_id
    else:
        snapshot = SeasonRpSnapshot(
            season_id=season_id,
            user_id=user_id,
            post_date=post_date,
            delta_rp=int(delta),
            posted_at=now,
            posted_by=posted_by,
            posted_session_id=session_id,
        )
        db.session.add(snapshot)
    return snapshot
