import re
from datetime import timedelta

from flask import Blueprint, request, jsonify, current_app
from werkzeug.security import generate_password_hash, check_password_hash
from trio_tracker.app import db
from trio_tracker.models import Profile
from trio_tracker.auth_utils import (
    SITE_ACCESS_COOKIE, generate_token, login_required, secrets_match, site_access_token,
)

auth_bp = Blueprint('auth', __name__)

_USERNAME_PATTERN = re.compile(r'^[a-z0-9_]{3,40}$')


def _password_complexity_error(raw_password):
    password = str(raw_password or '')
    if len(password) < 8:
        return 'Password must be at least 8 characters long'
    if not re.search(r'[A-Za-z]', password) or not re.search(r'\d', password):
        return 'Password must include at least one letter and one number'
    return None


def _normalize_username(raw_value):
    return str(raw_value or '').strip().lower()


@auth_bp.route('/verify-pin', methods=['POST'])
def verify_pin():
    """Exchange the shared site PIN for an HTTP-only access cookie."""
    correct_pin = str(current_app.config.get('SITE_ACCESS_PIN') or '')
    if not correct_pin:
        current_app.logger.error('SITE_ACCESS_PIN is not configured')
        return jsonify({'error': 'Server configuration error'}), 500

    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    pin = str(data.get('pin') or '').strip()
    if not pin:
        return jsonify({'error': 'PIN is required'}), 400
    if not secrets_match(correct_pin, pin):
        return jsonify({'error': 'Invalid PIN'}), 401

    response = jsonify({'success': True})
    days = int(current_app.config.get('SITE_ACCESS_COOKIE_DAYS', 30))
    response.set_cookie(
        SITE_ACCESS_COOKIE,
        site_access_token(),
        max_age=int(timedelta(days=days).total_seconds()),
        httponly=True,
        secure=bool(current_app.config.get('SITE_ACCESS_COOKIE_SECURE', False)),
        samesite='Lax',
        path='/',
    )
    return response


@auth_bp.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict) or not data.get('username') or not data.get('password'):
        return jsonify({'error': 'Username and password are required'}), 400

    username = _normalize_username(data['username'])
    if not _USERNAME_PATTERN.match(username):
        return jsonify({
            'error': 'Username must be 3-40 characters of letters, numbers or underscores'
        }), 400
    password_error = _password_complexity_error(data.get('password'))
    if password_error:
        return jsonify({'error': password_error}), 400

    if Profile.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already taken. Try a different one.'}), 409

    display_name = str(data.get('display_name') or '').strip()[:80] or username
    profile = Profile(
        username=username,
        display_name=display_name,
        password_hash=generate_password_hash(data['password']),
    )
    db.session.add(profile)
    db.session.commit()
    token = generate_token(profile.id)
    return jsonify({'token': token, 'user': profile.to_dict()}), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict) or not data.get('username') or not data.get('password'):
        return jsonify({'error': 'Username and password are required'}), 400

    profile = Profile.query.filter_by(username=_normalize_username(data['username'])).first()
    if not profile or not check_password_hash(profile.password_hash, str(data['password'])):
        return jsonify({'error': 'Invalid username or password.'}), 401

    token = generate_token(profile.id)
    return jsonify({'token': token, 'user': profile.to_dict()})


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({'user': request.current_user.to_dict()})
