"""Cumulative season RP series built from posted snapshots."""
from collections import defaultdict

from trio_tracker.models import SeasonPlayer, SeasonRpSnapshot

SNAPSHOT_READ_LIMIT = 5000


def season_members(season_id):
    rows = SeasonPlayer.query.filter_by(season_id=season_id).all()
    members = [{
        'user_id': row.user_id,
        'display_name': row.profile.display_name if row.profile else 'Unknown',
        'username': row.profile.username if row.profile else 'unknown',
    } for row in rows]
    members.sort(key=lambda m: m['display_name'].lower())
    return members


def build_cumulative_series(rows, members):
    """Group snapshot deltas by date, then accumulate per member.

    `rows` are dicts with user_id, post_date (date) and delta_rp. Each point
    carries every member's running total under `totals` and that day's
    change under `deltas`, keyed by user id. Rows for non-members are ignored.
    """
    by_date = defaultdict(lambda: defaultdict(int))
    for row in rows:
        by_date[row['post_date']][row['user_id']] += int(row.get('delta_rp') or 0)

    running = {m['user_id']: 0 for m in members}
    points = []
    for post_date in sorted(by_date):
        day = by_date[post_date]
        point = {'date': post_date.isoformat(), 'totals': {}, 'deltas': {}}
        for member in members:
            user_id = member['user_id']
            delta = day.get(user_id, 0)
            running[user_id] += delta
            point['totals'][user_id] = running[user_id]
            point['deltas'][user_id] = delta
        points.append(point)
    return points


def season_progression(season_id):
    members = season_members(season_id)
    snapshots = SeasonRpSnapshot.query.filter_by(
        season_id=season_id,
    ).order_by(SeasonRpSnapshot.post_date.asc()).limit(SNAPSHOT_READ_LIMIT).all()
    rows = [{
        'user_id': s.user_id,
        'post_date': s.post_date,
        'delta_rp': s.delta_rp,
    } for s in snapshots]
    return {
        'players': members,
        'series': build_cumulative_series(rows, members),
    }
