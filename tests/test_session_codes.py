"""Tests for short session code allocation."""
import pytest

from trio_tracker.errors import SessionCodeAllocationError
from trio_tracker.services.session_codes import allocate_session_code, random_code


def test_random_code_is_six_digits():
    for _ in range(50):
        code = random_code()
        assert len(code) == 6
        assert code.isdigit()


def test_allocation_skips_codes_in_use():
    candidates = iter(['111111', '222222', '333333'])
    taken = {'111111', '222222'}
    code = allocate_session_code(
        max_attempts=5, generate=lambda: next(candidates), in_use=lambda c: c in taken,
    )
    assert code == '333333'


def test_allocation_raises_after_max_attempts():
    attempts = []

    def generate():
        attempts.append(1)
        return '424242'

    with pytest.raises(SessionCodeAllocationError) as excinfo:
        allocate_session_code(max_attempts=10, generate=generate, in_use=lambda c: True)
    assert len(attempts) == 10
    assert excinfo.value.status_code == 503


def test_create_session_surfaces_allocation_failure(client, auth_headers, monkeypatch):
    monkeypatch.setattr(
        'trio_tracker.services.session_codes.code_in_use', lambda code: True,
    )
    res = client.post('/api/sessions', json={'season_number': 7}, headers=auth_headers)
    assert res.status_code == 503
    assert 'session code' in res.get_json()['error']
