#!/usr/bin/env python3
"""
=============================================================================
task-completed.py - Claude Code hook: task finished -> Discord
=============================================================================

Reads the hook payload from stdin and posts a green "Task Completed" or red
"Task Failed" embed with prompt, response tail, tools used, duration and
the current usage quota.

Payload (either form):
  {"transcript_path": "/path/session.jsonl"}           episode from transcript
  {"prompt": "...", "tools": [...], "duration": 2500,
   "status": "success", "error": "..."}                 episode from payload

Always exits 0; failures are only logged.
=============================================================================
"""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent / 'lib'))

import notify_config  # noqa: E402
from discord_notifier import send  # noqa: E402
from hook_runner import collect, parse_payload, read_stdin  # noqa: E402
from message_format import build_task_message  # noqa: E402
from notify_config import log  # noqa: E402
from transcript_parser import Episode, reconstruct  # noqa: E402
from usage_checker import get_usage_stats, make_scraper  # noqa: E402


def episode_from_payload(payload: dict) -> Episode:
    """Episode built directly from hook payload fields."""
    tools = payload.get('tools')
    duration = payload.get('duration')
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        duration = None
    return Episode(
        tools=[str(t) for t in tools] if isinstance(tools, list) else [],
        prompt=str(payload['prompt']) if payload.get('prompt') else None,
        duration=max(0, int(duration)) if duration is not None else None,
        error=str(payload['error']) if payload.get('error') else None,
    )


def load_episode(payload: dict) -> Episode:
    transcript_path = payload.get('transcript_path')
    if not transcript_path:
        return episode_from_payload(payload)
    episode = reconstruct(transcript_path)
    if payload.get('error'):
        episode.error = str(payload['error'])
    return episode


def notify(payload: dict, scraper=None):
    """Build and send the task message. Returns the DiscordMessage."""
    episode, snapshot = collect(
        lambda: load_episode(payload),
        lambda: get_usage_stats(notify_config.USAGE_SOURCE, scraper),
        quota_timeout=notify_config.QUOTA_TIMEOUT,
    )
    status = payload.get('status')
    message = build_task_message(episode, snapshot, status=str(status) if status else None)
    send(message, notify_config.DISCORD_WEBHOOK, timeout=notify_config.WEBHOOK_TIMEOUT)
    return message


def main():
    try:
        payload = parse_payload(read_stdin(notify_config.STDIN_TIMEOUT))
        notify(payload, make_scraper())
    except Exception as e:
        log(f"Error in task-completed hook: {e}", "ERROR")

    # Fire-and-forget: never surface a failure to Claude Code
    sys.exit(0)


if __name__ == '__main__':
    main()
