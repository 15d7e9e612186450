"""Tests for ending a session."""
import json

from sqlalchemy.exc import SQLAlchemyError

from trio_tracker.app import db
from trio_tracker.models import SeasonPlayer, SeasonPlayerStats, TrackerSession
from trio_tracker.services import rp_ledger
from trio_tracker.services.session_doc import empty_doc, new_player, record_game


def _register(client, username):
    res = client.post('/api/auth/register', json={
        'username': username, 'password': 'password123', 'display_name': username.title(),
    })
    data = json.loads(res.data)
    return {'Authorization': f'Bearer {data["token"]}'}, data['user']['id']


def _session_with_doc(client, headers, doc, season_number=7):
    client.post('/api/seasons', json={'season_number': season_number}, headers=headers)
    created = json.loads(client.post(
        '/api/sessions', json={'season_number': season_number, 'doc': doc}, headers=headers,
    ).data)
    return created


def _end(client, created, **payload):
    return client.post(
        f'/api/sessions/{created["sessionId"]}/end',
        json=payload,
        headers={'X-Write-Key': created['writeKey']},
    )


def test_end_session_writes_stats_and_reports_skips(client, discord):
    headers, host_id = _register(client, 'host')
    _, mate_id = _register(client, 'mate')
    doc = empty_doc([
        new_player('Host', user_id=host_id, player_id='h'),
        new_player('Mate', user_id=mate_id, player_id='m'),
        new_player('Walk-in', player_id='w'),
    ])
    doc, _ = record_game(doc, {
        'h': {'damage': 2300, 'kills': 5},
        'm': {'damage': 1100, 'kills': 0},
        'w': {'damage': 300, 'kills': 1},
    }, placement=1)
    doc['players'][0]['totalRP'] = 80
    created = _session_with_doc(client, headers, doc)

    res = _end(client, created)
    assert res.status_code == 200
    data = json.loads(res.data)
    assert data['success'] is True
    assert data['stats_inserted'] == 2
    assert data['members_registered'] == 1
    assert data['errors'] == ['Skipped Walk-in: not a registered user']
    assert data['discord_posted'] is False
    assert discord.calls == []

    host_stats = SeasonPlayerStats.query.filter_by(user_id=host_id).one()
    assert host_stats.games == 1
    assert host_stats.total_damage == 2300
    assert host_stats.two_k_games == 1
    assert host_stats.one_k_games == 0
    assert host_stats.total_rp == 80
    mate_stats = SeasonPlayerStats.query.filter_by(user_id=mate_id).one()
    assert mate_stats.one_k_games == 1
    assert mate_stats.donuts == 1
    assert SeasonPlayer.query.filter_by(user_id=mate_id).count() == 1

    session = db.session.get(TrackerSession, created['sessionId'])
    assert session.status == 'ended'
    assert session.ended_at is not None


def test_end_session_posts_summary_when_asked(client, discord):
    headers, host_id = _register(client, 'host')
    doc = empty_doc([new_player('Host', user_id=host_id)])
    created = _session_with_doc(client, headers, doc)

    data = json.loads(_end(client, created, post_to_discord=True).data)
    assert data['discord_posted'] is True
    assert len(discord.calls) == 1


def test_end_session_records_discord_failure(client, discord):
    discord.status = 404
    headers, host_id = _register(client, 'host')
    created = _session_with_doc(client, headers, empty_doc([new_player('Host', user_id=host_id)]))

    res = _end(client, created, postToDiscord=True)
    assert res.status_code == 200
    data = json.loads(res.data)
    assert data['discord_posted'] is False
    assert data['errors'] == ['Failed to post to Discord']
    assert data['stats_inserted'] == 1


def test_end_session_requires_write_key_and_active_session(client):
    headers, host_id = _register(client, 'host')
    created = _session_with_doc(client, headers, empty_doc([new_player('Host', user_id=host_id)]))

    res = client.post(
        f'/api/sessions/{created["sessionId"]}/end',
        json={}, headers={'X-Write-Key': 'nope'},
    )
    assert res.status_code == 403
    assert _end(client, created).status_code == 200
    assert _end(client, created).status_code == 409


def test_end_session_without_season_is_not_found(client):
    headers, host_id = _register(client, 'host')
    created = json.loads(client.post(
        '/api/sessions', json={'season_number': 99}, headers=headers,
    ).data)
    res = _end(client, created)
    assert res.status_code == 404
    assert json.loads(res.data)['error'] == 'Season not found for this session'


def test_end_session_keeps_players_that_succeed(client, monkeypatch):
    headers, host_id = _register(client, 'host')
    _, mate_id = _register(client, 'mate')
    doc = empty_doc([
        new_player('Host', user_id=host_id, player_id='h'),
        new_player('Mate', user_id=mate_id, player_id='m'),
    ])
    created = _session_with_doc(client, headers, doc)

    real_ensure_member = rp_ledger.ensure_member

    def flaky_ensure_member(season_id, user_id):
        if user_id == mate_id:
            raise SQLAlchemyError('database is locked')
        return real_ensure_member(season_id, user_id)

    monkeypatch.setattr(rp_ledger, 'ensure_member', flaky_ensure_member)

    res = _end(client, created)
    assert res.status_code == 200
    data = json.loads(res.data)
    assert data['stats_inserted'] == 1
    assert data['members_registered'] == 0
    assert data['errors'] == ['Failed to save stats for Mate']

    assert SeasonPlayerStats.query.filter_by(user_id=host_id).count() == 1
    assert SeasonPlayerStats.query.filter_by(user_id=mate_id).count() == 0
    assert SeasonPlayer.query.filter_by(user_id=mate_id).count() == 0
    session = db.session.get(TrackerSession, created['sessionId'])
    assert session.status == 'ended'
