"""Tests for Discord summary formatting and the webhook passthrough."""
import json

import pytest
import requests

from trio_tracker.errors import ConfigurationError, DiscordPostError, ValidationError
from trio_tracker.services.discord import (
    average_fixed, format_session_summary, post_to_webhook, signed, validate_content,
)
from trio_tracker.services.session_doc import empty_doc, new_player, record_game


def _auth_headers(client):
    res = client.post('/api/auth/register', json={
        'username': 'poster', 'password': 'password123',
    })
    return {'Authorization': f'Bearer {res.get_json()["token"]}'}


def test_signed():
    assert signed(45) == '+45'
    assert signed(-10) == '-10'
    assert signed(0) == '0'
    assert signed(None) == '0'


def test_format_session_summary():
    doc = empty_doc([
        new_player('Wraith', player_id='a'),
        new_player('Bloodhound', player_id='b'),
    ])
    doc, _ = record_game(doc, {
        'a': {'damage': 1200, 'kills': 3},
        'b': {'damage': 400, 'kills': 0},
    }, placement=2)
    doc, _ = record_game(doc, {
        'a': {'damage': 2100, 'kills': 6},
        'b': {'damage': 900, 'kills': 2},
    }, placement=1)
    doc['wins'] = 1
    doc['players'][0]['totalRP'] = 120
    doc['players'][1]['totalRP'] = -35

    assert format_session_summary(doc, 7) == '\n'.join([
        '**Apex Session Summary — Season 7**',
        'Games: 2 | Wins: 1 | Avg Placement: 1.5',
        '',
        '**#1 Wraith**',
        '• Damage: 3,300 (Avg: 1650)',
        '• Kills: 9',
        '• 1k Games: 1 | 2k Games: 1',
        '• Donuts: 0',
        '• Session RP: +120',
        '',
        '**#2 Bloodhound**',
        '• Damage: 1,300 (Avg: 650)',
        '• Kills: 2',
        '• 1k Games: 0 | 2k Games: 0',
        '• Donuts: 1',
        '• Session RP: -35',
        '',
        '**Squad Total RP: +85**',
    ])


def test_format_empty_session():
    summary = format_session_summary(empty_doc(), 3)
    assert summary.splitlines()[1] == 'Games: 0 | Wins: 0 | Avg Placement: 0'
    assert summary.endswith('**Squad Total RP: 0**')


def test_summary_averages_round_ties_up():
    doc = empty_doc([new_player('Horizon', player_id='a')])
    doc['players'][0]['games'] = 2
    doc['players'][0]['totalDamage'] = 2501
    doc['sessionGames'] = 4
    doc['totalPlacement'] = 9

    lines = format_session_summary(doc, 7).splitlines()
    assert lines[1] == 'Games: 4 | Wins: 0 | Avg Placement: 2.3'
    assert lines[4] == '• Damage: 2,501 (Avg: 1251)'


def test_average_fixed():
    assert average_fixed(2501, 2) == '1251'
    assert average_fixed(2499, 2) == '1250'
    assert average_fixed(9, 4, places=1) == '2.3'
    assert average_fixed(7, 4, places=1) == '1.8'
    assert average_fixed(6, 3, places=1) == '2.0'


def test_validate_content():
    assert validate_content('hello') == 'hello'
    with pytest.raises(ValidationError):
        validate_content('   ')
    with pytest.raises(ValidationError):
        validate_content({'content': 'nested'})
    with pytest.raises(ValidationError):
        validate_content('x' * 2001)
    assert validate_content('x' * 2000)


def test_post_to_webhook_errors(monkeypatch):
    with pytest.raises(ConfigurationError):
        post_to_webhook('', 'hello')

    def unreachable(url, json=None, timeout=None):
        raise requests.ConnectionError('connection refused')

    monkeypatch.setattr('trio_tracker.services.discord.requests.post', unreachable)
    with pytest.raises(DiscordPostError) as excinfo:
        post_to_webhook('https://discord.test/hook', 'hello', timeout=2)
    assert excinfo.value.status_code == 502


def test_discord_route_posts_content(client, discord):
    res = client.post('/api/discord', json={'content': 'GG'}, headers=_auth_headers(client))
    assert res.status_code == 200
    assert json.loads(res.data) == {'ok': True}
    assert discord.calls[0]['json'] == {'content': 'GG'}


def test_discord_route_passes_through_upstream_status(client, discord):
    discord.status = 429
    discord.text = 'You are being rate limited.'
    res = client.post('/api/discord', json={'content': 'GG'}, headers=_auth_headers(client))
    assert res.status_code == 429
    assert json.loads(res.data)['error'] == 'You are being rate limited.'


def test_discord_route_rejects_other_payload_shapes(client, discord):
    headers = _auth_headers(client)
    res = client.post('/api/discord', json={'payload': {'content': 'GG'}}, headers=headers)
    assert res.status_code == 400
    assert json.loads(res.data)['error'] == "Missing 'content' string"
    assert discord.calls == []


def test_discord_route_requires_webhook_url(app, client, discord):
    app.config['DISCORD_WEBHOOK_URL'] = ''
    res = client.post('/api/discord', json={'content': 'GG'}, headers=_auth_headers(client))
    assert res.status_code == 500
    assert 'DISCORD_WEBHOOK_URL' in json.loads(res.data)['error']
    assert discord.calls == []
