import json
import uuid
from trio_tracker.app import db
from trio_tracker.time_utils import utcnow_naive


def _safe_json(raw_value, fallback=None):
    if fallback is None:
        fallback = {}
    if not raw_value:
        return fallback
    try:
        return json.loads(raw_value)
    except (TypeError, ValueError):
        return fallback


def _new_id():
    return uuid.uuid4().hex


def _iso(value):
    return value.isoformat() if value else None


class Profile(db.Model):
    __tablename__ = 'profiles'

    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    username = db.Column(db.String(40), unique=True, nullable=False)
    display_name = db.Column(db.String(80), nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'display_name': self.display_name,
            'created_at': _iso(self.created_at),
        }


class Season(db.Model):
    __tablename__ = 'seasons'

    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    season_number = db.Column(db.Integer, nullable=False, index=True)
    host_user_id = db.Column(db.String(32), db.ForeignKey('profiles.id'), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    host = db.relationship('Profile')

    def to_dict(self):
        return {
            'id': self.id,
            'season_number': self.season_number,
            'host_user_id': self.host_user_id,
            'is_active': self.is_active,
            'created_at': _iso(self.created_at),
        }


class SeasonPlayer(db.Model):
    __tablename__ = 'season_players'
    __table_args__ = (
        db.UniqueConstraint('season_id', 'user_id', name='uq_season_players_season_user'),
    )

    id = db.Column(db.Integer, primary_key=True)
    season_id = db.Column(db.String(32), db.ForeignKey('seasons.id'), nullable=False)
    user_id = db.Column(db.String(32), db.ForeignKey('profiles.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    profile = db.relationship('Profile')


class TrackerSession(db.Model):
    """One live play session; `doc` is overwritten wholesale on every save."""
    __tablename__ = 'sessions'

    id = db.Column(db.String(32), primary_key=True, default=_new_id)
    session_code = db.Column(db.String(6), unique=True, nullable=False, index=True)
    season_number = db.Column(db.Integer, nullable=False)
    season_id = db.Column(db.String(32), db.ForeignKey('seasons.id'), nullable=True)
    host_user_id = db.Column(db.String(32), db.ForeignKey('profiles.id'), nullable=True)
    write_key = db.Column(db.String(64), nullable=False)
    doc_json = db.Column('doc', db.Text, nullable=False, default='{}')
    status = db.Column(db.String(20), default='active', nullable=False)  # active, ended
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    updated_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    ended_at = db.Column(db.DateTime, nullable=True)

    @property
    def doc(self):
        return _safe_json(self.doc_json)

    @doc.setter
    def doc(self, value):
        self.doc_json = json.dumps(value)

    def to_dict(self):
        # write_key is only ever returned by create.
        return {
            'id': self.id,
            'session_code': self.session_code,
            'season_number': self.season_number,
            'season_id': self.season_id,
            'host_user_id': self.host_user_id,
            'status': self.status,
            'doc': self.doc,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
            'ended_at': _iso(self.ended_at),
        }


class RpEntry(db.Model):
    """Append-only live RP ledger row."""
    __tablename__ = 'rp_entries'

    id = db.Column(db.Integer, primary_key=True)
    season_id = db.Column(db.String(32), db.ForeignKey('seasons.id'), nullable=False)
    user_id = db.Column(db.String(32), db.ForeignKey('profiles.id'), nullable=False)
    entry_date = db.Column(db.Date, nullable=False)
    delta_rp = db.Column(db.Integer, nullable=False)
    created_by = db.Column(db.String(32), db.ForeignKey('profiles.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive(), index=True)

    def to_dict(self):
        return {
            'id': self.id,
            'season_id': self.season_id,
            'user_id': self.user_id,
            'entry_date': _iso(self.entry_date),
            'delta_rp': self.delta_rp,
            'created_by': self.created_by,
            'created_at': _iso(self.created_at),
        }


class SeasonRpSnapshot(db.Model):
    """Posted RP per (season, user, day). Same-day posts merge into one row."""
    __tablename__ = 'season_rp_snapshots'
    __table_args__ = (
        db.UniqueConstraint(
            'season_id', 'user_id', 'post_date', name='uq_season_rp_snapshots_day',
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    season_id = db.Column(db.String(32), db.ForeignKey('seasons.id'), nullable=False)
    user_id = db.Column(db.String(32), db.ForeignKey('profiles.id'), nullable=False)
    post_date = db.Column(db.Date, nullable=False)
    delta_rp = db.Column(db.Integer, nullable=False, default=0)
    posted_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    posted_by = db.Column(db.String(32), db.ForeignKey('profiles.id'), nullable=True)
    posted_session_id = db.Column(db.String(32), db.ForeignKey('sessions.id'), nullable=True)

    def to_dict(self):
        return {
            'id': self.id,
            'season_id': self.season_id,
            'user_id': self.user_id,
            'post_date': _iso(self.post_date),
            'delta_rp': self.delta_rp,
            'posted_at': _iso(self.posted_at),
            'posted_by': self.posted_by,
            'posted_session_id': self.posted_session_id,
        }


class SessionPost(db.Model):
    """Immutable audit record of a host posting a session summary."""
    __tablename__ = 'session_posts'

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(32), db.ForeignKey('sessions.id'), nullable=False)
    season_id = db.Column(db.String(32), db.ForeignKey('seasons.id'), nullable=True)
    posted_by = db.Column(db.String(32), db.ForeignKey('profiles.id'), nullable=True)
    post_date = db.Column(db.Date, nullable=False)
    summary_text = db.Column(db.Text, nullable=False, default='')
    discord_posted = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    deltas = db.relationship('SessionRpDelta', backref='post', lazy='joined',
                             cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'session_id': self.session_id,
            'season_id': self.season_id,
            'posted_by': self.posted_by,
            'post_date': _iso(self.post_date),
            'summary_text': self.summary_text,
            'discord_posted': self.discord_posted,
            'created_at': _iso(self.created_at),
            'deltas': [d.to_dict() for d in self.deltas],
        }


class SessionRpDelta(db.Model):
    __tablename__ = 'session_rp_deltas'

    id = db.Column(db.Integer, primary_key=True)
    post_id = db.Column(db.Integer, db.ForeignKey('session_posts.id'), nullable=False)
    user_id = db.Column(db.String(32), db.ForeignKey('profiles.id'), nullable=False)
    delta_rp = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {'user_id': self.user_id, 'delta_rp': self.delta_rp}


class SeasonPlayerStats(db.Model):
    """Per-player totals written when a session is ended."""
    __tablename__ = 'season_player_stats'

    id = db.Column(db.Integer, primary_key=True)
    season_id = db.Column(db.String(32), db.ForeignKey('seasons.id'), nullable=False)
    user_id = db.Column(db.String(32), db.ForeignKey('profiles.id'), nullable=False)
    session_id = db.Column(db.String(32), db.ForeignKey('sessions.id'), nullable=False)
    games = db.Column(db.Integer, default=0, nullable=False)
    total_damage = db.Column(db.Integer, default=0, nullable=False)
    total_kills = db.Column(db.Integer, default=0, nullable=False)
    one_k_games = db.Column(db.Integer, default=0, nullable=False)
    two_k_games = db.Column(db.Integer, default=0, nullable=False)
    donuts = db.Column(db.Integer, default=0, nullable=False)
    total_rp = db.Column(db.Integer, default=0, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    def to_dict(self):
        return {
            'id': self.id,
            'season_id': self.season_id,
            'user_id': self.user_id,
            'session_id': self.session_id,
            'games': self.games,
            'total_damage': self.total_damage,
            'total_kills': self.total_kills,
            'one_k_games': self.one_k_games,
            'two_k_games': self.two_k_games,
            'donuts': self.donuts,
            'total_rp': self.total_rp,
            'created_at': _iso(self.created_at),
        }
