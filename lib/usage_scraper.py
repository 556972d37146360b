"""
Usage quota scraping from Claude Code's /usage dialog.

There is no API for the session quota, so a detached tmux session keeps
`claude` running in the background. Each request drives it with keystrokes:

  ensure    has-session, else new-session + first /usage run
  refresh   Escape Escape C-u, type /usage, Escape (autocomplete), Enter
  capture   poll capture-pane until the report has rendered
  parse     "Current session" section -> "NN% used" + "Resets ..." line

The session is left running between requests. register_cleanup() ties its
teardown to interpreter exit and SIGINT/SIGTERM.

/usage dialog excerpt:

    Current session
    ███████████▌                                       23% used
    Resets 2:59pm (America/New_York)

    Current week (all models)
    ...
"""

import atexit
import re
import signal
import subprocess
import sys
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from notify_config import log

SESSION_NAME = 'claude-usage-checker'
WINDOW_NAME = 'usage'
USAGE_COMMAND = '/usage'

# Keystroke pacing (seconds)
STARTUP_DELAY = 3.0
KEY_DELAY = 0.5
POPUP_DELAY = 0.3
FIRST_RENDER_DELAY = 4.0
RENDER_SETTLE = 1.0
RENDER_POLL_INTERVAL = 0.5
RENDER_TIMEOUT = 5.0

SECTION_MARKER = 'Current session'
NEXT_SECTION_MARKER = 'Current week'

# Dialog border characters that trail captured lines
BORDER_CHARS = '\u2502\u2503\u2551 \t'

PERCENT_PATTERN = re.compile(r'(\d+)%\s+used')
RESET_PATTERN = re.compile(r'(Resets\s+.+)')
RESET_CLOCK_PATTERN = re.compile(
    r'Resets\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)(?:\s*\(([^)]+)\))?',
    re.IGNORECASE
)

RESET_VERBATIM = 'verbatim'
RESET_COUNTDOWN = 'countdown'


class TmuxError(Exception):
    """A tmux command failed or timed out."""


@dataclass
class QuotaSnapshot:
    percentage_used: int
    reset_description: str
    reset_minutes: Optional[int] = None


# =============================================================================
# TMUX SESSION HANDLE
# =============================================================================

class TmuxSession:
    """Handle on the named background tmux session running claude."""

    def __init__(self, name: str = SESSION_NAME, window: str = WINDOW_NAME,
                 command: str = 'claude', timeout: float = 10.0,
                 runner: Callable = subprocess.run):
        self.name = name
        self.window = window
        self.command = command
        self.timeout = timeout
        self._run = runner

    @property
    def target(self) -> str:
        return f"{self.name}:{self.window}"

    def _tmux(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        cmd = ['tmux', *args]
        try:
            result = self._run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as e:
            raise TmuxError(f"timed out after {self.timeout}s: {' '.join(cmd)}") from e
        except OSError as e:
            raise TmuxError(f"could not run tmux: {e}") from e
        if check and result.returncode != 0:
            stderr = (result.stderr or '').strip()
            raise TmuxError(f"{' '.join(cmd)} exited {result.returncode}: {stderr}")
        return result

    def exists(self) -> bool:
        return self._tmux('has-session', '-t', self.name, check=False).returncode == 0

    def create(self):
        self._tmux('new-session', '-d', '-s', self.name, '-n', self.window, self.command)

    def send_keys(self, *keys: str):
        # Key names (Escape, Enter, C-u) are interpreted by tmux
        self._tmux('send-keys', '-t', self.target, *keys)

    def send_text(self, text: str):
        # -l sends literally; '--' guards text starting with '-'
        self._tmux('send-keys', '-t', self.target, '-l', '--', text)

    def capture(self) -> str:
        return self._tmux('capture-pane', '-t', self.target, '-p').stdout or ''

    def kill(self):
        """Kill the session. Already gone is fine."""
        try:
            self._tmux('kill-session', '-t', self.name, check=False)
        except TmuxError:
            pass


def register_cleanup(session: TmuxSession):
    """Kill the tmux session on normal exit and on SIGINT/SIGTERM."""
    atexit.register(session.kill)

    def signal_handler(signum, frame):
        session.kill()
        sys.exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


# =============================================================================
# PARSING
# =============================================================================

def _clock_reset_minutes(hour: int, minute: int, meridiem: str, zone: Optional[str],
                         now: Optional[datetime] = None) -> int:
    """Minutes until the next occurrence of a 12-hour wall-clock time."""
    tz = None
    if zone:
        try:
            tz = ZoneInfo(zone.strip())
        except (ZoneInfoNotFoundError, ValueError):
            tz = None

    if now is None:
        now = datetime.now(tz) if tz else datetime.now()
    elif tz is not None and now.tzinfo is not None:
        now = now.astimezone(tz)

    hour24 = hour % 12
    if meridiem.lower() == 'pm':
        hour24 += 12

    reset = now.replace(hour=hour24, minute=minute, second=0, microsecond=0)
    if reset < now:
        reset += timedelta(days=1)

    return max(0, int((reset - now).total_seconds() // 60))


def format_reset_minutes(minutes: int) -> str:
    """Render minutes as "2h5m remaining until reset" / "5m remaining until reset"."""
    hours, mins = divmod(minutes, 60)
    if hours == 0:
        return f"{mins}m remaining until reset"
    return f"{hours}h{mins}m remaining until reset"


def parse_usage_output(output: str, reset_format: str = RESET_VERBATIM,
                       now: Optional[datetime] = None) -> Optional[QuotaSnapshot]:
    """Parse a captured /usage screen into a QuotaSnapshot.

    Only the "Current session" section is read. The first "Resets ..." line
    ends the scan; reaching "Current week" first does too.

    reset_format="verbatim" keeps the reset line as-is.
    reset_format="countdown" converts its clock time into minutes remaining
    (falls back to verbatim if the line carries no clock time).

    Returns None if neither a non-zero percentage nor a reset line was found.
    """
    percent_used = 0
    percent_found = False
    reset_description = ''
    reset_minutes = None
    in_section = False

    for line in output.split('\n'):
        if not in_section:
            if SECTION_MARKER in line:
                in_section = True
            continue

        if not percent_found:
            percent_match = PERCENT_PATTERN.search(line)
            if percent_match:
                percent_used = min(100, int(percent_match.group(1)))
                percent_found = True

        reset_match = RESET_PATTERN.search(line)
        if reset_match:
            reset_description = reset_match.group(1).strip().rstrip(BORDER_CHARS)
            if reset_format == RESET_COUNTDOWN:
                clock = RESET_CLOCK_PATTERN.search(line)
                if clock and 1 <= int(clock.group(1)) <= 12 and int(clock.group(2) or 0) < 60:
                    reset_minutes = _clock_reset_minutes(
                        int(clock.group(1)), int(clock.group(2) or 0),
                        clock.group(3), clock.group(4), now
                    )
                    reset_description = format_reset_minutes(reset_minutes)
            break

        if NEXT_SECTION_MARKER in line:
            break

    if percent_used > 0 or reset_description:
        return QuotaSnapshot(percent_used, reset_description, reset_minutes)
    return None


# =============================================================================
# SCRAPER
# =============================================================================

class UsageScraper:
    """Collects quota snapshots through a TmuxSession handle."""

    def __init__(self, session: TmuxSession, reset_format: str = RESET_VERBATIM,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.session = session
        self.reset_format = reset_format
        self._sleep = sleep
        self._clock = clock

    def _run_usage_command(self):
        """Type /usage, dismiss the autocomplete popup, execute."""
        self.session.send_text(USAGE_COMMAND)
        self._sleep(KEY_DELAY)
        self.session.send_keys('Escape')
        self._sleep(POPUP_DELAY)
        self.session.send_keys('Enter')

    def ensure_session(self):
        if self.session.exists():
            return
        log(f"Creating tmux session '{self.session.name}' for usage checking", component="usage")
        self.session.create()
        self._sleep(STARTUP_DELAY)
        self._run_usage_command()
        self._sleep(FIRST_RENDER_DELAY)

    def refresh(self):
        """Return to a clean prompt and run /usage again."""
        self.session.send_keys('Escape', 'Escape', 'C-u')
        self._sleep(KEY_DELAY)
        self._run_usage_command()

    def capture_rendered(self) -> str:
        """Poll the pane until the report shows a reset line, bounded by RENDER_TIMEOUT."""
        self._sleep(RENDER_SETTLE)
        deadline = self._clock() + RENDER_TIMEOUT
        screen = self.session.capture()
        while not (SECTION_MARKER in screen and 'Resets' in screen):
            if self._clock() >= deadline:
                log("Usage report did not finish rendering, parsing partial screen", "WARN", "usage")
                break
            self._sleep(RENDER_POLL_INTERVAL)
            screen = self.session.capture()
        return screen

    def get_quota_snapshot(self) -> Optional[QuotaSnapshot]:
        """Current quota snapshot, or None on any failure."""
        try:
            self.ensure_session()
            self.refresh()
            screen = self.capture_rendered()
        except TmuxError as e:
            log(f"Failed to capture tmux usage: {e}", "ERROR", "usage")
            return None

        snapshot = parse_usage_output(screen, self.reset_format)
        if snapshot is None:
            log("No usage data found in captured screen", "WARN", "usage")
        return snapshot
