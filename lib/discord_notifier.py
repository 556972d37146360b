"""Discord webhook transport: fire-and-forget embed delivery."""

from dataclasses import dataclass, field
from typing import List, Tuple

import requests

from notify_config import log, mask_sensitive

# Discord embed field value limit
MAX_FIELD_VALUE = 1024


@dataclass
class DiscordMessage:
    title: str
    color: int
    timestamp: str
    fields: List[Tuple[str, str]] = field(default_factory=list)

    def add_field(self, name: str, value: str):
        self.fields.append((name, value))

    def to_payload(self) -> dict:
        """Webhook JSON body with a single embed."""
        return {
            'embeds': [{
                'title': self.title,
                'color': self.color,
                'fields': [
                    {'name': name, 'value': _clip(value)}
                    for name, value in self.fields
                ],
                'timestamp': self.timestamp,
            }]
        }


def _clip(value: str) -> str:
    # Discord rejects empty field values; use a zero-width space
    value = value or '\u200b'
    if len(value) > MAX_FIELD_VALUE:
        return value[:MAX_FIELD_VALUE - 3] + '...'
    return value


def send(message: DiscordMessage, webhook_url: str, timeout: float = 3.0) -> bool:
    """POST the message to a Discord webhook. Never raises.

    Returns True on a 2xx response.
    """
    if not webhook_url:
        log("DISCORD_WEBHOOK not configured", "ERROR", "discord")
        return False

    try:
        response = requests.post(webhook_url, json=message.to_payload(), timeout=timeout)
    except requests.exceptions.Timeout:
        log(f"Discord webhook timed out after {timeout}s", "ERROR", "discord")
        return False
    except requests.exceptions.RequestException as e:
        log(f"Failed to send Discord notification to {mask_sensitive(webhook_url, 30, 4)}: {e}",
            "ERROR", "discord")
        return False

    if not response.ok:
        log(f"Discord API error: {response.status_code} {response.reason}", "ERROR", "discord")
        return False
    return True
