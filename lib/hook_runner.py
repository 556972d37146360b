"""
Hook runtime helpers: bounded stdin read, lenient payload parsing, and
concurrent collection of the episode and the quota snapshot.
"""

import io
import json
import os
import select
import sys
import threading
import time
from typing import Callable, Optional, Tuple

from notify_config import log


def read_stdin(timeout: float = 1.0, stream=None) -> str:
    """Read stdin until EOF or timeout, whichever comes first.

    A caller that never closes the pipe cannot hang the hook.
    """
    stream = stream or sys.stdin
    try:
        fd = stream.fileno()
    except (AttributeError, io.UnsupportedOperation):
        # In-memory stream (tests): already complete
        return stream.read()

    chunks = []
    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            log(f"Timed out waiting for stdin after {timeout}s", "WARN")
            break
        ready, _, _ = select.select([fd], [], [], remaining)
        if not ready:
            continue
        chunk = os.read(fd, 65536)
        if not chunk:
            break
        chunks.append(chunk)
    return b''.join(chunks).decode('utf-8', errors='replace')


def parse_payload(raw: str) -> dict:
    """Hook payload as a dict. Empty or invalid input is {}."""
    if not raw or not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        log(f"Invalid JSON on stdin: {e}", "WARN")
        return {}
    if not isinstance(data, dict):
        log("Hook payload is not a JSON object, ignoring", "WARN")
        return {}
    return data


def collect(episode_fn: Callable, quota_fn: Callable,
            quota_timeout: float = 30.0) -> Tuple[object, Optional[object]]:
    """Run quota_fn on a daemon thread while episode_fn runs here, join both.

    The quota result is None if quota_fn raises or exceeds quota_timeout.
    A quota worker still running after the timeout is abandoned and does not
    keep the process alive at exit. Exceptions from episode_fn propagate.
    """
    outcome = {}

    def run_quota():
        try:
            outcome['snapshot'] = quota_fn()
        except Exception as e:
            outcome['error'] = e

    worker = threading.Thread(target=run_quota, name='quota', daemon=True)
    worker.start()
    episode = episode_fn()

    worker.join(quota_timeout)
    if worker.is_alive():
        log(f"Usage check timed out after {quota_timeout}s", "WARN", "usage")
        return episode, None
    if 'error' in outcome:
        log(f"Usage check failed: {outcome['error']}", "ERROR", "usage")
        return episode, None
    return episode, outcome.get('snapshot')
