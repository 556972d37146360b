"""
Message formatting - maps an Episode (or raw hook payload) and a quota
snapshot into a DiscordMessage.

Missing values render as placeholders rather than being dropped, so every
message of a kind has the same shape. Only the usage field is optional.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from discord_notifier import DiscordMessage
from transcript_parser import Episode
from usage_scraper import QuotaSnapshot

COLOR_SUCCESS = 0x00FF00
COLOR_FAILURE = 0xFF0000
COLOR_PENDING = 0xFFD700

TITLE_COMPLETED = '🟢 Task Completed'
TITLE_FAILED = '🔴 Task Failed'
TITLE_INPUT = '🟡 Input Requested'

PROMPT_PREVIEW_CHARS = 100
RESPONSE_PREVIEW_CHARS = 200


def format_tools(tools: List[str]) -> str:
    """Aggregate tool names: ["Read", "Edit", "Read"] -> "Read (2), Edit (1)"."""
    if not tools:
        return 'None'
    counts: Dict[str, int] = {}
    for tool in tools:
        counts[tool] = counts.get(tool, 0) + 1
    return ', '.join(f"{tool} ({count})" for tool, count in counts.items())


def format_duration(duration_ms: Optional[int]) -> str:
    if duration_ms is None:
        return 'Unknown'
    return f"{duration_ms / 1000:.1f}s"


def prompt_preview(prompt: Optional[str]) -> str:
    """First 100 chars of the prompt."""
    if not prompt:
        return 'No prompt provided'
    if len(prompt) > PROMPT_PREVIEW_CHARS:
        return prompt[:PROMPT_PREVIEW_CHARS] + '...'
    return prompt


def response_preview(response: Optional[str]) -> str:
    """Last 200 chars of the response (the end is what matters)."""
    if not response:
        return 'No response'
    if len(response) > RESPONSE_PREVIEW_CHARS:
        return '...' + response[-RESPONSE_PREVIEW_CHARS:]
    return response


def format_usage(snapshot: QuotaSnapshot) -> str:
    return f"├─ {snapshot.percentage_used}% used\n└─ {snapshot.reset_description}"


def format_clock(now: datetime) -> str:
    """12-hour clock without leading zero, e.g. "3:05 PM"."""
    return now.strftime('%I:%M %p').lstrip('0')


def _iso(now: datetime) -> str:
    return now.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


def is_failure(episode: Episode, status: Optional[str]) -> bool:
    if episode.error:
        return True
    return bool(status) and status.lower() != 'success'


def build_task_message(episode: Episode, snapshot: Optional[QuotaSnapshot],
                       status: Optional[str] = None,
                       now: Optional[datetime] = None) -> DiscordMessage:
    """Task completed/failed message."""
    now = now or datetime.now(timezone.utc)
    failed = is_failure(episode, status)

    message = DiscordMessage(
        title=TITLE_FAILED if failed else TITLE_COMPLETED,
        color=COLOR_FAILURE if failed else COLOR_SUCCESS,
        timestamp=_iso(now),
    )
    message.add_field('📝 Prompt', prompt_preview(episode.prompt))
    message.add_field('💬 Response', response_preview(episode.response))
    message.add_field('🔧 Tools', format_tools(episode.tools))
    message.add_field('⚡ Duration', format_duration(episode.duration))

    if failed:
        message.add_field('❌ Error', episode.error or 'Unknown error')
    else:
        message.add_field('✅ Status', 'Success')

    if snapshot:
        message.add_field('📊 Usage Stats', format_usage(snapshot))
    return message


def build_input_message(prompt: Optional[str], snapshot: Optional[QuotaSnapshot],
                        now: Optional[datetime] = None) -> DiscordMessage:
    """Input requested message."""
    now = now or datetime.now().astimezone()
    message = DiscordMessage(title=TITLE_INPUT, color=COLOR_PENDING, timestamp=_iso(now))
    message.add_field('📝 Prompt', prompt_preview(prompt))
    message.add_field('⏰ Time', format_clock(now))
    if snapshot:
        message.add_field('📊 Usage Stats', format_usage(snapshot))
    return message
