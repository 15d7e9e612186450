"""Discord webhook delivery and session summary formatting."""
from decimal import Decimal, ROUND_HALF_UP

import requests

from trio_tracker.errors import ConfigurationError, DiscordPostError, ValidationError
from trio_tracker.services.session_doc import squad_total_rp

DISCORD_CONTENT_LIMIT = 2000


def signed(value):
    value = int(value or 0)
    return f'+{value}' if value > 0 else str(value)


def average_fixed(total, count, places=0):
    """`total / count` as text with ties rounded up, e.g. 1250.5 -> '1251'."""
    quantum = Decimal(1).scaleb(-places)
    value = Decimal(int(total or 0)) / Decimal(int(count))
    return str(value.quantize(quantum, rounding=ROUND_HALF_UP))


def format_session_summary(doc, season_number):
    session_games = int(doc.get('sessionGames') or 0)
    avg_placement = (
        average_fixed(doc.get('totalPlacement'), session_games, places=1)
        if session_games else '0'
    )
    lines = [
        f'**Apex Session Summary — Season {season_number}**',
        f'Games: {doc.get("sessionGames", 0)} | Wins: {doc.get("wins", 0)} '
        f'| Avg Placement: {avg_placement}',
        '',
    ]

    for idx, player in enumerate(doc.get('players', []), start=1):
        games = int(player.get('games') or 0)
        total_damage = int(player.get('totalDamage') or 0)
        avg_damage = average_fixed(total_damage, games) if games > 0 else '0'
        lines.append(f'**#{idx} {player.get("name") or "(no name)"}**')
        lines.append(f'• Damage: {total_damage:,} (Avg: {avg_damage})')
        lines.append(f'• Kills: {int(player.get("totalKills") or 0)}')
        lines.append(
            f'• 1k Games: {int(player.get("oneKGames") or 0)} '
            f'| 2k Games: {int(player.get("twoKGames") or 0)}'
        )
        lines.append(f'• Donuts: {int(player.get("donuts") or 0)}')
        lines.append(f'• Session RP: {signed(player.get("totalRP"))}')
        lines.append('')

    lines.append(f'**Squad Total RP: {signed(squad_total_rp(doc))}**')
    return '\n'.join(lines)


def validate_content(content):
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Missing 'content' string")
    if len(content) > DISCORD_CONTENT_LIMIT:
        raise ValidationError(f'Discord messages are limited to {DISCORD_CONTENT_LIMIT} characters')
    return content


def post_to_webhook(webhook_url, content, timeout=10):
    """POST `content` to a Discord webhook. Raises DiscordPostError on failure; never retries."""
    if not webhook_url:
        raise ConfigurationError('Missing DISCORD_WEBHOOK_URL configuration')
    validate_content(content)

    try:
        response = requests.post(
            webhook_url,
            json={'content': content},
            timeout=timeout,
        )
    except requests.RequestException as exc:
        raise DiscordPostError(f'Discord webhook unreachable: {exc}') from exc

    if not 200 <= response.status_code < 300:
        detail = (response.text or '').strip() or 'Discord webhook error'
        raise DiscordPostError(detail, status_code=response.status_code)
    return True
