"""
Quota source selection.

USAGE_SOURCE picks where the quota snapshot comes from:
  tmux     scrape the /usage dialog (usage_scraper)
  ccusage  `npx ccusage@latest blocks --json`
  off      no usage field
"""

import json
import subprocess
from datetime import datetime, timezone
from typing import Optional

import notify_config
from notify_config import log
from transcript_parser import parse_timestamp
from usage_scraper import QuotaSnapshot, TmuxSession, UsageScraper, format_reset_minutes, register_cleanup

CCUSAGE_COMMAND = ['npx', 'ccusage@latest', 'blocks', '--json']
CCUSAGE_TIMEOUT = 5


def _remaining_minutes(reset_at, now: Optional[datetime] = None) -> int:
    reset_time = parse_timestamp(reset_at)
    if reset_time is None:
        return 0
    if reset_time.tzinfo is None:
        reset_time = reset_time.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0, int((reset_time - now).total_seconds() // 60))


def _percentage_used(remaining, total) -> int:
    if remaining is None or not total:
        return 0
    return round((total - remaining) / total * 100)


def parse_ccusage_output(stdout: str, now: Optional[datetime] = None) -> QuotaSnapshot:
    """Map ccusage JSON ({"blocks": {...}, "reset": {"at": ...}}) to a snapshot.

    Raises ValueError on malformed JSON.
    """
    data = json.loads(stdout)
    if not isinstance(data, dict):
        raise ValueError("ccusage output is not a JSON object")

    blocks = data.get('blocks') or {}
    reset = data.get('reset') or {}
    minutes = _remaining_minutes(reset.get('at'), now)
    return QuotaSnapshot(
        percentage_used=_percentage_used(blocks.get('remaining'), blocks.get('total')),
        reset_description=format_reset_minutes(minutes),
        reset_minutes=minutes,
    )


def get_ccusage_stats(runner=subprocess.run) -> Optional[QuotaSnapshot]:
    """Quota snapshot from ccusage, or None on any failure."""
    try:
        result = runner(CCUSAGE_COMMAND, capture_output=True, text=True,
                        timeout=CCUSAGE_TIMEOUT, check=True)
        return parse_ccusage_output(result.stdout)
    except (subprocess.SubprocessError, OSError, ValueError) as e:
        log(f"Failed to get usage stats from ccusage: {e}", "ERROR", "usage")
        return None


def make_scraper() -> Optional[UsageScraper]:
    """Scraper over the configured tmux session, or None when tmux is not the source.

    Unless USAGE_KEEP_SESSION is set, the session is killed when the process exits.
    """
    if notify_config.USAGE_SOURCE in ('off', 'ccusage'):
        return None
    session = TmuxSession(
        name=notify_config.USAGE_TMUX_SESSION,
        command=notify_config.USAGE_CLAUDE_COMMAND,
        timeout=notify_config.TMUX_TIMEOUT,
    )
    if not notify_config.USAGE_KEEP_SESSION:
        register_cleanup(session)
    return UsageScraper(session, reset_format=notify_config.USAGE_RESET_FORMAT)


def get_usage_stats(source: str, scraper: Optional[UsageScraper] = None) -> Optional[QuotaSnapshot]:
    """Quota snapshot from the configured source, or None."""
    if source == 'off':
        return None
    if source == 'ccusage':
        return get_ccusage_stats()
    if source != 'tmux':
        log(f"Unknown USAGE_SOURCE '{source}', falling back to tmux", "WARN", "usage")
    if scraper is None:
        log("No tmux scraper available", "WARN", "usage")
        return None
    return scraper.get_quota_snapshot()
