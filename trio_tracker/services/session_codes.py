"""Short numeric codes for sharing a live session by voice or chat.

Codes are drawn uniformly from 000000-999999 and checked against stored
sessions. With N stored sessions each attempt collides with probability
N / 1_000_000, so the chance of exhausting the default 10 attempts is
(N / 1_000_000) ** 10: negligible for the few hundred sessions a squad
runs in a year.
"""
import secrets

from trio_tracker.errors import SessionCodeAllocationError
from trio_tracker.models import TrackerSession

CODE_LENGTH = 6
DEFAULT_MAX_ATTEMPTS = 10


def random_code():
    return f'{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}'


def code_in_use(code):
    return TrackerSession.query.filter_by(session_code=code).first() is not None


def allocate_session_code(max_attempts=DEFAULT_MAX_ATTEMPTS, generate=None, in_use=None):
    """Return a code not held by any stored session or raise after `max_attempts` draws."""
    generate = generate or random_code
    in_use = in_use or code_in_use
    attempts = max(1, int(max_attempts))
    for _ in range(attempts):
        candidate = generate()
        if not in_use(candidate):
            return candidate
    raise SessionCodeAllocationError(
        f'Could not allocate a free session code after {attempts} attempts'
    )
