from flask import Blueprint, request, jsonify, current_app
from trio_tracker.auth_utils import login_required
from trio_tracker.services.discord import post_to_webhook, validate_content

discord_bp = Blueprint('discord', __name__)


@discord_bp.route('', methods=['POST'])
@login_required
def post_message():
    """Forward a pre-formatted `{content}` message to the configured webhook."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    content = validate_content(data.get('content'))

    webhook_url = current_app.config.get('DISCORD_WEBHOOK_URL')
    if not webhook_url:
        current_app.logger.error('DISCORD_WEBHOOK_URL is not configured')
        return jsonify({'error': 'Missing DISCORD_WEBHOOK_URL configuration'}), 500

    post_to_webhook(
        webhook_url, content,
        timeout=current_app.config.get('DISCORD_TIMEOUT_SECONDS', 10),
    )
    return jsonify({'ok': True})
