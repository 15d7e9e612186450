import hashlib
import hmac
from functools import wraps
from flask import request, jsonify, current_app
import jwt
from trio_tracker.app import db
from trio_tracker.models import Profile

SITE_ACCESS_COOKIE = 'site_access'


def generate_token(user_id):
    """Generate a JWT token for a profile."""
    from datetime import datetime, timedelta, timezone
    payload = {
        'user_id': user_id,
        'exp': datetime.now(timezone.utc) + timedelta(
            hours=current_app.config.get('JWT_EXPIRATION_HOURS', 24)
        ),
    }
    return jwt.encode(payload, current_app.config['SECRET_KEY'], algorithm='HS256')


def _normalize_bearer_token(raw_token):
    token = str(raw_token or '').strip()
    if token.startswith('Bearer '):
        token = token.split(' ', 1)[1].strip()
    return token


def _decode_user_from_token(token):
    normalized = _normalize_bearer_token(token)
    if not normalized:
        return None, 'Authentication required'
    try:
        payload = jwt.decode(
            normalized, current_app.config['SECRET_KEY'], algorithms=['HS256']
        )
        user = db.session.get(Profile, payload['user_id'])
        if not user:
            return None, 'User not found'
        return user, None
    except jwt.ExpiredSignatureError:
        return None, 'Token expired'
    except jwt.InvalidTokenError:
        return None, 'Invalid token'


def get_user_from_token(token):
    """Resolve a profile from a raw JWT/bearer token value."""
    user, _ = _decode_user_from_token(token)
    return user


def get_optional_user():
    """Profile for the request's bearer token, or None when absent or invalid."""
    return get_user_from_token(request.headers.get('Authorization', ''))


def secrets_match(expected, provided):
    """Constant-time comparison for write keys and PINs."""
    expected = str(expected or '')
    provided = str(provided or '')
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode('utf-8'), provided.encode('utf-8'))


def site_access_token():
    """Cookie value proving the PIN was entered, bound to SECRET_KEY and the PIN."""
    secret = str(current_app.config.get('SECRET_KEY') or '')
    pin = str(current_app.config.get('SITE_ACCESS_PIN') or '')
    return hmac.new(
        secret.encode('utf-8'),
        f'site-access:{pin}'.encode('utf-8'),
        hashlib.sha256,
    ).hexdigest()


def has_site_access(req):
    if not str(current_app.config.get('SITE_ACCESS_PIN') or ''):
        return True
    return secrets_match(site_access_token(), req.cookies.get(SITE_ACCESS_COOKIE))


def login_required(f):
    """Decorator to require authentication on a route."""
    @wraps(f)
    def decorated(*args, **kwargs):
        auth_header = request.headers.get('Authorization', '')
        token = _normalize_bearer_token(auth_header)
        user, error = _decode_user_from_token(token)
        if error:
            return jsonify({'error': error}), 401
        request.current_user = user
        return f(*args, **kwargs)
    return decorated
