#!/usr/bin/env python3
"""
=============================================================================
input-requested.py - Claude Code hook: waiting on the user -> Discord
=============================================================================

Posts a yellow "Input Requested" embed with the prompt preview, local time
and the current usage quota. Always exits 0.
=============================================================================
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / 'lib'))

import notify_config  # noqa: E402
from discord_notifier import send  # noqa: E402
from hook_runner import collect, parse_payload, read_stdin  # noqa: E402
from message_format import build_input_message  # noqa: E402
from notify_config import log  # noqa: E402
from usage_checker import get_usage_stats, make_scraper  # noqa: E402


def prompt_from_payload(payload: dict):
    # Notification hooks carry "message" instead of "prompt"
    prompt = payload.get('prompt') or payload.get('message')
    return str(prompt) if prompt else None


def notify(payload: dict, scraper=None):
    """Build and send the input-requested message. Returns the DiscordMessage."""
    prompt, snapshot = collect(
        lambda: prompt_from_payload(payload),
        lambda: get_usage_stats(notify_config.USAGE_SOURCE, scraper),
        quota_timeout=notify_config.QUOTA_TIMEOUT,
    )
    message = build_input_message(prompt, snapshot)
    send(message, notify_config.DISCORD_WEBHOOK, timeout=notify_config.WEBHOOK_TIMEOUT)
    return message


def main():
    try:
        payload = parse_payload(read_stdin(notify_config.STDIN_TIMEOUT))
        notify(payload, make_scraper())
    except Exception as e:
        log(f"Error in input-requested hook: {e}", "ERROR")

    sys.exit(0)


if __name__ == '__main__':
    main()
