#!/usr/bin/env python3
"""
=============================================================================
register-hooks.py - Register the Discord notification hooks with Claude Code
=============================================================================

Patches ~/.claude/settings.json (backed up to settings.json.backup first):

  hooks["user-prompt-submit"]  -> input-requested.py
  hooks["agent-response-end"]  -> task-completed.py

Usage:
  register-hooks.py               register (DISCORD_WEBHOOK must be set)
  register-hooks.py --unregister  remove both hooks
=============================================================================
"""

import argparse
import json
import shlex
import shutil
import sys
from pathlib import Path

HOOKS_DIR = Path(__file__).resolve().parent
sys.path.insert(0, str(HOOKS_DIR.parent / 'lib'))

import notify_config  # noqa: E402
from notify_config import mask_sensitive  # noqa: E402

INPUT_HOOK_KEY = 'user-prompt-submit'
TASK_HOOK_KEY = 'agent-response-end'


def hook_commands(hooks_dir: Path = HOOKS_DIR) -> dict:
    """Command line Claude Code runs for each hook key."""
    python = shlex.quote(sys.executable or 'python3')
    return {
        INPUT_HOOK_KEY: f"{python} {shlex.quote(str(hooks_dir / 'input-requested.py'))}",
        TASK_HOOK_KEY: f"{python} {shlex.quote(str(hooks_dir / 'task-completed.py'))}",
    }


def backup_settings(settings_path: Path) -> Path:
    backup_path = settings_path.with_name(settings_path.name + '.backup')
    shutil.copyfile(settings_path, backup_path)
    return backup_path


def register(settings: dict, commands: dict) -> list:
    """Insert hook commands. Returns the keys that were overwritten."""
    hooks = settings.setdefault('hooks', {})
    overwritten = [key for key in commands if hooks.get(key)]
    hooks.update(commands)
    return overwritten


def unregister(settings: dict):
    hooks = settings.get('hooks')
    if not isinstance(hooks, dict):
        return
    hooks.pop(INPUT_HOOK_KEY, None)
    hooks.pop(TASK_HOOK_KEY, None)
    if not hooks:
        del settings['hooks']


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Register Discord notification hooks in Claude Code settings',
    )
    parser.add_argument('--unregister', '-u', action='store_true',
                        help='Remove the hooks instead of adding them')
    parser.add_argument('--settings', type=Path, default=notify_config.SETTINGS_FILE,
                        help='Path to Claude Code settings.json')
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    settings_path = args.settings

    print(f"📍 Hooks directory: {HOOKS_DIR}")
    print(f"⚙️  Settings file: {settings_path}")

    if not args.unregister and not notify_config.DISCORD_WEBHOOK:
        print("\n❌ Error: DISCORD_WEBHOOK is not configured!", file=sys.stderr)
        print(f"   Set it in {notify_config.ENV_FILE} or {notify_config.CONFIG_FILE}.", file=sys.stderr)
        return 1

    if not settings_path.exists():
        print(f"\n❌ Error: {settings_path} not found!", file=sys.stderr)
        print("   Make sure Claude Code is installed.", file=sys.stderr)
        return 1

    try:
        settings = json.loads(settings_path.read_text())
        if not isinstance(settings, dict):
            raise ValueError("settings root is not a JSON object")

        backup_path = backup_settings(settings_path)
        print(f"💾 Backed up settings to: {backup_path}")

        if args.unregister:
            unregister(settings)
            settings_path.write_text(json.dumps(settings, indent=2))
            print("\n✅ Hooks unregistered successfully!")
            return 0

        commands = hook_commands()
        overwritten = register(settings, commands)
        if overwritten:
            print("\n⚠️  Warning: hooks already registered, overwriting:")
            for key in overwritten:
                print(f"   - {key}")

        settings_path.write_text(json.dumps(settings, indent=2))
        print("\n✅ Hooks registered successfully!")
        print(f"   Webhook: {mask_sensitive(notify_config.DISCORD_WEBHOOK, 30, 4)}")
        for key, command in commands.items():
            print(f"   - {key}: {command}")
        return 0
    except (OSError, ValueError) as e:
        print(f"\n❌ Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
