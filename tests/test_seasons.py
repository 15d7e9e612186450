"""Tests for seasons, membership and the progression chart."""
import json
from datetime import date

from trio_tracker.app import db
from trio_tracker.models import Season, SeasonRpSnapshot
from trio_tracker.services.progression import build_cumulative_series


def _register(client, username):
    res = client.post('/api/auth/register', json={
        'username': username, 'password': 'password123', 'display_name': username.title(),
    })
    data = json.loads(res.data)
    return {'Authorization': f'Bearer {data["token"]}'}, data['user']['id']


def _start(client, headers, **payload):
    return client.post('/api/seasons', json=payload, headers=headers)


def test_no_active_season(client):
    headers, _ = _register(client, 'host')
    res = client.get('/api/seasons/active', headers=headers)
    assert res.status_code == 404


def test_start_season_and_defaults(client):
    headers, host_id = _register(client, 'host')
    res = _start(client, headers, season_number=7)
    assert res.status_code == 201
    season = json.loads(res.data)['season']
    assert season['season_number'] == 7
    assert season['host_user_id'] == host_id
    assert season['is_host'] is True
    assert season['is_member'] is True

    res = _start(client, headers)
    assert res.status_code == 201
    assert json.loads(res.data)['season']['season_number'] == 8

    active = json.loads(client.get('/api/seasons/active', headers=headers).data)['season']
    assert active['season_number'] == 8
    assert Season.query.filter_by(is_active=True).count() == 1


def test_start_existing_season_reactivates_it(client):
    headers, _ = _register(client, 'host')
    first_id = json.loads(_start(client, headers, season_number=7).data)['season']['id']
    _start(client, headers, season_number=8)

    res = _start(client, headers, season_number=7)
    assert res.status_code == 200
    data = json.loads(res.data)
    assert data['created'] is False
    assert data['season']['id'] == first_id
    assert [s.season_number for s in Season.query.filter_by(is_active=True)] == [7]


def test_start_season_validation_and_host_only(client):
    headers, _ = _register(client, 'host')
    other_headers, _ = _register(client, 'other')
    assert _start(client, headers, season_number=0).status_code == 400
    assert _start(client, headers, season_number='abc').status_code == 400
    assert _start(client, headers, season_number=True).status_code == 400

    _start(client, headers, season_number=7)
    res = _start(client, other_headers, season_number=8)
    assert res.status_code == 403


def test_join_and_players(client):
    host_headers, host_id = _register(client, 'host')
    guest_headers, guest_id = _register(client, 'guest')
    season_id = json.loads(_start(client, host_headers, season_number=7).data)['season']['id']

    res = client.post(f'/api/seasons/{season_id}/join', headers=guest_headers)
    assert res.status_code == 200
    assert json.loads(res.data)['message'] == 'Joined season'
    res = client.post(f'/api/seasons/{season_id}/join', headers=guest_headers)
    assert json.loads(res.data)['message'] == 'Already a member'

    players = json.loads(client.get(
        f'/api/seasons/{season_id}/players', headers=guest_headers,
    ).data)['players']
    assert [p['display_name'] for p in players] == ['Guest', 'Host']
    assert {p['user_id'] for p in players} == {host_id, guest_id}

    assert client.post('/api/seasons/missing/join', headers=guest_headers).status_code == 404


def test_host_adds_players_by_username(client):
    host_headers, _ = _register(client, 'host')
    guest_headers, guest_id = _register(client, 'guest')
    season_id = json.loads(_start(client, host_headers, season_number=7).data)['season']['id']

    res = client.post(
        f'/api/seasons/{season_id}/players', json={'username': 'guest'}, headers=guest_headers,
    )
    assert res.status_code == 403

    res = client.post(
        f'/api/seasons/{season_id}/players', json={'username': 'GUEST'}, headers=host_headers,
    )
    assert res.status_code == 201
    assert guest_id in [p['user_id'] for p in json.loads(res.data)['players']]

    res = client.post(
        f'/api/seasons/{season_id}/players', json={'username': 'nobody'}, headers=host_headers,
    )
    assert res.status_code == 404
    res = client.post(f'/api/seasons/{season_id}/players', json={}, headers=host_headers)
    assert res.status_code == 400


def test_build_cumulative_series_groups_by_date():
    members = [{'user_id': 'a'}, {'user_id': 'b'}]
    rows = [
        {'user_id': 'a', 'post_date': date(2024, 5, 2), 'delta_rp': -20},
        {'user_id': 'a', 'post_date': date(2024, 5, 1), 'delta_rp': 50},
        {'user_id': 'b', 'post_date': date(2024, 5, 1), 'delta_rp': 10},
        {'user_id': 'b', 'post_date': date(2024, 5, 1), 'delta_rp': 5},
        {'user_id': 'ghost', 'post_date': date(2024, 5, 3), 'delta_rp': 99},
    ]
    series = build_cumulative_series(rows, members)
    assert series == [
        {'date': '2024-05-01', 'totals': {'a': 50, 'b': 15}, 'deltas': {'a': 50, 'b': 15}},
        {'date': '2024-05-02', 'totals': {'a': 30, 'b': 15}, 'deltas': {'a': -20, 'b': 0}},
        {'date': '2024-05-03', 'totals': {'a': 30, 'b': 15}, 'deltas': {'a': 0, 'b': 0}},
    ]


def test_progression_reads_snapshots_and_reset(client):
    host_headers, host_id = _register(client, 'host')
    guest_headers, guest_id = _register(client, 'guest')
    season_id = json.loads(_start(client, host_headers, season_number=7).data)['season']['id']
    client.post(f'/api/seasons/{season_id}/join', headers=guest_headers)

    db.session.add_all([
        SeasonRpSnapshot(season_id=season_id, user_id=host_id,
                         post_date=date(2024, 5, 1), delta_rp=40),
        SeasonRpSnapshot(season_id=season_id, user_id=guest_id,
                         post_date=date(2024, 5, 3), delta_rp=25),
        SeasonRpSnapshot(season_id=season_id, user_id=host_id,
                         post_date=date(2024, 5, 3), delta_rp=-15),
    ])
    db.session.commit()
    # Live ledger rows are not part of the chart.
    client.post('/api/rp/entries', json={'season_id': season_id, 'delta_rp': 500},
                headers=host_headers)

    res = client.get(f'/api/seasons/{season_id}/progression', headers=guest_headers)
    assert res.status_code == 200
    data = json.loads(res.data)
    assert data['season']['id'] == season_id
    assert [p['date'] for p in data['series']] == ['2024-05-01', '2024-05-03']
    assert data['series'][-1]['totals'] == {host_id: 25, guest_id: 25}

    res = client.delete(f'/api/seasons/{season_id}/snapshots', headers=guest_headers)
    assert res.status_code == 403
    res = client.delete(f'/api/seasons/{season_id}/snapshots', headers=host_headers)
    assert res.status_code == 200
    assert json.loads(res.data)['deleted'] == 3
    data = json.loads(client.get(
        f'/api/seasons/{season_id}/progression', headers=guest_headers,
    ).data)
    assert data['series'] == []
