"""
Configuration and logging shared by the Discord notification hooks.

Settings precedence (per key):
  1. Process environment (includes the project .env, loaded without
     overriding variables that are already set)
  2. ~/.claude/discord-notify.conf  (KEY=value lines, # comments)
  3. Hardcoded default
"""

import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict

from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent
ENV_FILE = PROJECT_ROOT / '.env'

load_dotenv(ENV_FILE)

CLAUDE_HOME = Path(os.environ.get('CLAUDE_HOME', Path.home() / '.claude'))
CONFIG_FILE = CLAUDE_HOME / 'discord-notify.conf'
SETTINGS_FILE = CLAUDE_HOME / 'settings.json'
LOG_FILE = CLAUDE_HOME / 'logs' / 'discord-notify.log'


# =============================================================================
# CONFIG FILE
# =============================================================================

def load_config(config_path: Path = CONFIG_FILE) -> Dict[str, str]:
    """Load a KEY=value config file, return dict of key/value pairs."""
    config = {}
    if config_path.exists():
        with open(config_path) as f:
            for line in f:
                line = line.strip()
                if '=' in line and not line.startswith('#'):
                    key, value = line.split('=', 1)
                    value = value.strip().strip('"').strip("'")
                    config[key.strip()] = value
    return config


config = load_config()


def setting(key: str, default: str = '') -> str:
    """Read a string setting: env var -> config file -> default."""
    return os.environ.get(key, config.get(key, default))


def setting_float(key: str, default: float) -> float:
    """Read a numeric setting, falling back to default on bad values."""
    raw = setting(key, '')
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        log(f"Invalid value for {key}: {raw!r}, using {default}", "WARN")
        return default


def setting_bool(key: str, default: bool) -> bool:
    """Read a boolean setting ("1"/"true"/"yes"/"on" are true)."""
    raw = setting(key, '')
    if not raw:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


# =============================================================================
# LOGGING
# =============================================================================

def log(message, level="INFO", component="discord-notify"):
    """Log message to stderr and the notify log file.

    stderr rather than stdout: Claude Code feeds some hooks' stdout back into
    the conversation.
    """
    timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
    log_line = f"[{timestamp}] [{component}] [{level}] {message}"
    print(log_line, file=sys.stderr)

    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(LOG_FILE, 'a') as f:
            f.write(log_line + '\n')
    except OSError:
        pass


def mask_sensitive(value, show_start=3, show_end=2):
    """Mask sensitive string for safe logging.

    Args:
        value: The string to mask
        show_start: Number of chars to show at start (default 3)
        show_end: Number of chars to show at end (default 2)

    Returns:
        Masked string like "abc...xy"
    """
    if not value:
        return "(not set)"
    value = str(value)
    if len(value) <= show_start + show_end + 3:
        return "***"
    return f"{value[:show_start]}...{value[-show_end:]}"


# =============================================================================
# SETTINGS
# =============================================================================

DISCORD_WEBHOOK = setting('DISCORD_WEBHOOK')

USAGE_SOURCE = setting('USAGE_SOURCE', 'tmux').lower()
USAGE_RESET_FORMAT = setting('USAGE_RESET_FORMAT', 'verbatim').lower()
USAGE_TMUX_SESSION = setting('USAGE_TMUX_SESSION', 'claude-usage-checker')
USAGE_CLAUDE_COMMAND = setting('USAGE_CLAUDE_COMMAND', 'claude')
USAGE_KEEP_SESSION = setting_bool('USAGE_KEEP_SESSION', False)

STDIN_TIMEOUT = setting_float('STDIN_TIMEOUT', 1.0)
QUOTA_TIMEOUT = setting_float('QUOTA_TIMEOUT', 30.0)
TMUX_TIMEOUT = setting_float('TMUX_TIMEOUT', 10.0)
WEBHOOK_TIMEOUT = setting_float('WEBHOOK_TIMEOUT', 3.0)
