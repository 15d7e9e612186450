"""
Session document shape and the pure reducer behind host-side edits.

A session document is a plain JSON-compatible dict:

    {
        "players": [PlayerEntry, ...],    # at most MAX_PLAYERS
        "sessionGames": int,
        "wins": int,
        "totalPlacement": int,
        "placements": [int, ...],
    }

Every mutating helper returns a new document and never touches its input,
so a caller can keep old documents around as undo frames.

Game-count predicates use mutually exclusive damage bands:
- 1k game: 1000 <= damage < 2000
- 2k game: damage >= 2000
- donut:   kills == 0
"""
import copy
import json
import uuid

MAX_PLAYERS = 3
ONE_K_DAMAGE = 1000
TWO_K_DAMAGE = 2000

PLAYER_COUNTERS = (
    'games', 'totalDamage', 'totalKills', 'oneKGames', 'twoKGames', 'donuts',
)


def is_one_k_game(damage):
    return ONE_K_DAMAGE <= damage < TWO_K_DAMAGE


def is_two_k_game(damage):
    return damage >= TWO_K_DAMAGE


def is_donut(kills):
    return kills == 0


def _coerce_count(raw_value):
    if isinstance(raw_value, bool):
        return 0
    try:
        value = int(raw_value)
    except (TypeError, ValueError):
        return 0
    return max(0, value)


def _coerce_signed(raw_value):
    if isinstance(raw_value, bool):
        return 0
    try:
        return int(raw_value)
    except (TypeError, ValueError):
        return 0


def new_player(name='', user_id=None, player_id=None):
    player = {
        'id': player_id or uuid.uuid4().hex,
        'userId': user_id,
        'name': str(name or '').strip()[:80],
        'totalRP': 0,
    }
    for counter in PLAYER_COUNTERS:
        player[counter] = 0
    return player


def empty_doc(players=None):
    return {
        'players': list(players or []),
        'sessionGames': 0,
        'wins': 0,
        'totalPlacement': 0,
        'placements': [],
    }


def _normalize_player(raw):
    if not isinstance(raw, dict):
        return None
    user_id = raw.get('userId')
    player = new_player(
        name=raw.get('name', ''),
        user_id=str(user_id) if user_id else None,
        player_id=str(raw.get('id') or '') or None,
    )
    for counter in PLAYER_COUNTERS:
        player[counter] = _coerce_count(raw.get(counter))
    player['totalRP'] = _coerce_signed(raw.get('totalRP'))
    return player


def normalize_doc(raw):
    """Coerce an untrusted document into the canonical shape.

    Returns (doc, error). Unknown keys are dropped and counters are clamped to
    non-negative integers; structural problems produce an error message.
    """
    if not isinstance(raw, dict):
        return None, 'Session doc must be an object'
    raw_players = raw.get('players', [])
    if not isinstance(raw_players, list):
        return None, 'Session doc players must be a list'
    if len(raw_players) > MAX_PLAYERS:
        return None, f'A session holds at most {MAX_PLAYERS} players'

    players = []
    seen_ids = set()
    seen_users = set()
    for raw_player in raw_players:
        player = _normalize_player(raw_player)
        if player is None:
            return None, 'Each player must be an object'
        if player['id'] in seen_ids:
            return None, 'Duplicate player id in session doc'
        if player['userId'] and player['userId'] in seen_users:
            return None, 'A user can only appear once in a session'
        seen_ids.add(player['id'])
        if player['userId']:
            seen_users.add(player['userId'])
        players.append(player)

    raw_placements = raw.get('placements', [])
    if not isinstance(raw_placements, list):
        return None, 'Session doc placements must be a list'
    placements = [_coerce_count(p) for p in raw_placements]

    doc = empty_doc(players)
    doc['sessionGames'] = _coerce_count(raw.get('sessionGames'))
    doc['wins'] = _coerce_count(raw.get('wins'))
    doc['totalPlacement'] = _coerce_count(raw.get('totalPlacement'))
    doc['placements'] = placements
    return doc, None


def canonical_doc(raw):
    """Validate a document that will be stored as sent.

    Returns (doc, error). The document must already be in the shape
    `normalize_doc` produces: every player carries an id and every counter,
    counters are integers and no unknown keys are present. Anything that
    would be rewritten on the way into storage is rejected instead.
    """
    doc, error = normalize_doc(raw)
    if error:
        return None, error
    if json.dumps(doc, sort_keys=True) != json.dumps(raw, sort_keys=True):
        return None, ('Session doc must list every field with integer values, '
                      'give each player an id and contain no unknown keys')
    return doc, None


def find_player(doc, player_id):
    for player in doc.get('players', []):
        if player.get('id') == player_id:
            return player
    return None


def find_player_by_user(doc, user_id):
    if not user_id:
        return None
    for player in doc.get('players', []):
        if player.get('userId') == user_id:
            return player
    return None


def add_player(doc, name='', user_id=None):
    if len(doc['players']) >= MAX_PLAYERS:
        raise ValueError(f'A session holds at most {MAX_PLAYERS} players')
    if user_id and find_player_by_user(doc, user_id):
        raise ValueError('Player is already in this session')
    updated = copy.deepcopy(doc)
    updated['players'].append(new_player(name=name, user_id=user_id))
    return updated


def remove_player(doc, player_id):
    updated = copy.deepcopy(doc)
    updated['players'] = [p for p in updated['players'] if p['id'] != player_id]
    return updated


def rename_player(doc, player_id, name):
    updated = copy.deepcopy(doc)
    player = find_player(updated, player_id)
    if player is None:
        raise KeyError(player_id)
    player['name'] = str(name or '').strip()[:80]
    return updated


def _parse_game_value(raw_value):
    # Blank or invalid inputs count as zero, matching the data-entry form.
    if raw_value is None or raw_value == '' or isinstance(raw_value, bool):
        return 0
    try:
        value = int(raw_value)
    except (TypeError, ValueError):
        return 0
    return max(0, value)


def _apply_game(player, damage, kills, sign):
    player['games'] = max(0, player['games'] + sign)
    player['totalDamage'] = max(0, player['totalDamage'] + sign * damage)
    player['totalKills'] = max(0, player['totalKills'] + sign * kills)
    if is_one_k_game(damage):
        player['oneKGames'] = max(0, player['oneKGames'] + sign)
    if is_two_k_game(damage):
        player['twoKGames'] = max(0, player['twoKGames'] + sign)
    if is_donut(kills):
        player['donuts'] = max(0, player['donuts'] + sign)


def record_game(doc, entries, placement=None):
    """Record one game for every player in the session.

    `entries` maps player id to {'damage': ..., 'kills': ...}; players with
    no entry are recorded with zero damage and zero kills. Returns
    (doc, frame) where frame is what `undo_game` needs to reverse it.
    """
    entries = entries or {}
    if not any(entries.values()) and placement is None:
        raise ValueError('No game stats provided')

    updated = copy.deepcopy(doc)
    frame = {'entries': [], 'placement': None}
    for player in updated['players']:
        raw = entries.get(player['id']) or {}
        damage = _parse_game_value(raw.get('damage'))
        kills = _parse_game_value(raw.get('kills'))
        _apply_game(player, damage, kills, 1)
        frame['entries'].append({'id': player['id'], 'damage': damage, 'kills': kills})

    updated['sessionGames'] += 1
    if placement is not None:
        placement_value = _parse_game_value(placement)
        if placement_value < 1:
            raise ValueError('Placement must be a positive integer')
        updated['placements'].append(placement_value)
        updated['totalPlacement'] += placement_value
        frame['placement'] = placement_value
    return updated, frame


def undo_game(doc, frame):
    """Reverse a frame produced by `record_game`."""
    updated = copy.deepcopy(doc)
    for entry in frame.get('entries', []):
        player = find_player(updated, entry['id'])
        if player is None:
            continue
        _apply_game(player, entry['damage'], entry['kills'], -1)

    updated['sessionGames'] = max(0, updated['sessionGames'] - 1)
    placement = frame.get('placement')
    if placement is not None:
        if updated['placements'] and updated['placements'][-1] == placement:
            updated['placements'].pop()
        updated['totalPlacement'] = max(0, updated['totalPlacement'] - placement)
    return updated


def add_win(doc):
    updated = copy.deepcopy(doc)
    updated['wins'] += 1
    return updated


def undo_win(doc):
    updated = copy.deepcopy(doc)
    updated['wins'] = max(0, updated['wins'] - 1)
    return updated


def adjust_player_rp(doc, player_id, delta):
    updated = copy.deepcopy(doc)
    player = find_player(updated, player_id)
    if player is None:
        raise KeyError(player_id)
    player['totalRP'] += int(delta)
    return updated


def average_placement(doc):
    if not doc.get('sessionGames'):
        return 0.0
    return doc.get('totalPlacement', 0) / doc['sessionGames']


def squad_total_rp(doc):
    return sum(int(p.get('totalRP') or 0) for p in doc.get('players', []))


def self_edit_error(stored_doc, new_doc, user_id):
    """Validate a non-host save where a player updates only their own entry.

    A player may join the session (append an entry carrying their user id)
    and change the name or totalRP of their own entry. Everything else must
    match the stored document. Returns an error message or None.
    """
    for key in ('sessionGames', 'wins', 'totalPlacement', 'placements'):
        if stored_doc.get(key) != new_doc.get(key):
            return 'Players may only update their own entry'

    stored_players = {p['id']: p for p in stored_doc.get('players', [])}
    new_players = {p['id']: p for p in new_doc.get('players', [])}

    for player_id in stored_players:
        if player_id not in new_players:
            return 'Players may only update their own entry'

    for player_id, player in new_players.items():
        previous = stored_players.get(player_id)
        if previous is None:
            if player.get('userId') != user_id:
                return 'Players may only add themselves to a session'
            if find_player_by_user(stored_doc, user_id):
                return 'Player is already in this session'
            if any(player[counter] for counter in PLAYER_COUNTERS):
                return 'A joining player must start with empty stats'
            continue
        if previous == player:
            continue
        if previous.get('userId') != user_id or player.get('userId') != user_id:
            return 'Players may only update their own entry'
        for counter in PLAYER_COUNTERS:
            if previous[counter] != player[counter]:
                return 'Players may only update their own RP'
    return None
