"""
Transcript reconstruction - recovers one request/response episode from a
Claude Code JSONL transcript.

The transcript is append-only and mixes many entry types (summaries, file
snapshots, tool results, earlier exchanges). Only the activity that follows
the most recent textual user prompt (the anchor) is attributed to the
episode:

  pass 1   find the anchor: last {"type": "user"} entry whose
           message.content is a plain, non-empty string
  pass 2   replay in order, start collecting at the anchor, gather
           tool_use names, text parts and the last timestamp seen

Lines that are not valid JSON objects are skipped (the file may be read
while Claude Code is still writing it).
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from notify_config import log


@dataclass
class Episode:
    """One reconstructed user-request/assistant-response cycle."""
    tools: List[str] = field(default_factory=list)
    prompt: Optional[str] = None
    response: Optional[str] = None
    duration: Optional[int] = None
    error: Optional[str] = None


def read_entries(transcript_path) -> Tuple[List[dict], int]:
    """Read a JSONL file, return (entries, skipped_line_count).

    Raises OSError if the file cannot be read.
    """
    entries = []
    skipped = 0
    content = Path(transcript_path).read_text(encoding='utf-8', errors='replace')
    for line in content.split('\n'):
        if not line.strip():
            continue
        try:
            entry = json.loads(line)
        except json.JSONDecodeError:
            skipped += 1
            continue
        if not isinstance(entry, dict):
            skipped += 1
            continue
        entries.append(entry)
    return entries, skipped


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp (Z suffix accepted). None if unusable."""
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        return None


def _message(entry: dict) -> dict:
    msg = entry.get('message')
    return msg if isinstance(msg, dict) else {}


def _is_user_prompt(entry: dict) -> bool:
    """A user entry carrying typed text (not a tool_result list)."""
    if entry.get('type') != 'user':
        return False
    msg = _message(entry)
    content = msg.get('content')
    return msg.get('role') == 'user' and isinstance(content, str) and bool(content.strip())


def find_anchor(entries: List[dict]) -> Optional[int]:
    """Index of the most recent user prompt entry, or None."""
    for index in range(len(entries) - 1, -1, -1):
        if _is_user_prompt(entries[index]):
            return index
    return None


def _elapsed_ms(start: datetime, end: datetime) -> int:
    try:
        delta = end - start
    except TypeError:
        # naive vs aware timestamps
        return 0
    # Out-of-order timestamps clamp to zero
    return max(0, int(delta.total_seconds() * 1000))


def reconstruct_entries(entries: List[dict]) -> Episode:
    """Build an Episode from already-parsed transcript entries."""
    anchor_index = find_anchor(entries)
    if anchor_index is None:
        return Episode()

    anchor = entries[anchor_index]
    prompt = _message(anchor)['content']
    anchor_ts = anchor.get('timestamp')
    anchor_time = parse_timestamp(anchor_ts)

    tools: List[str] = []
    texts: List[str] = []
    end_time: Optional[datetime] = None
    collecting = False

    for index, entry in enumerate(entries):
        if not collecting:
            if anchor_ts:
                # Re-identify the anchor by its timestamp so that an earlier
                # identical prompt cannot start collection
                collecting = (
                    entry.get('type') == anchor.get('type')
                    and _message(entry).get('role') == 'user'
                    and entry.get('timestamp') == anchor_ts
                )
            else:
                collecting = index == anchor_index
            # The anchor's own timestamp is the start, never the end: an
            # anchor with no later timestamped entry has no duration
            continue

        ts = parse_timestamp(entry.get('timestamp'))
        if ts is not None:
            end_time = ts

        msg = _message(entry)
        content = msg.get('content')
        if msg.get('role') != 'assistant' or not isinstance(content, list):
            continue

        for part in content:
            if not isinstance(part, dict):
                continue
            if part.get('type') == 'tool_use' and part.get('name'):
                tools.append(part['name'])
            elif part.get('type') == 'text' and isinstance(part.get('text'), str):
                texts.append(part['text'])

    response = '\n'.join(texts).strip() or None

    duration = None
    if anchor_time is not None and end_time is not None:
        duration = _elapsed_ms(anchor_time, end_time)

    return Episode(tools=tools, prompt=prompt, response=response, duration=duration)


def reconstruct(transcript_path) -> Episode:
    """Parse a transcript file into an Episode. Never raises.

    Any read failure yields an Episode with no tools and no other fields.
    """
    try:
        entries, skipped = read_entries(transcript_path)
    except (OSError, UnicodeError) as e:
        log(f"Failed to read transcript {transcript_path}: {e}", "ERROR", "transcript")
        return Episode()

    if skipped:
        log(f"Skipped {skipped} malformed transcript line(s) in {transcript_path}", "WARN", "transcript")

    try:
        return reconstruct_entries(entries)
    except (KeyError, TypeError, ValueError) as e:
        log(f"Failed to parse transcript {transcript_path}: {e}", "ERROR", "transcript")
        return Episode()
