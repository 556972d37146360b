"""
Unit tests for lib/usage_scraper.py
Tests /usage screen parsing (verbatim and countdown), the tmux keystroke
sequence, session reuse and failure handling.
"""

import subprocess
import sys
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

# Add lib to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'lib'))
import usage_scraper
from usage_scraper import (
    KEY_DELAY, POPUP_DELAY, RENDER_SETTLE, STARTUP_DELAY, FIRST_RENDER_DELAY,
    QuotaSnapshot, TmuxSession, UsageScraper, format_reset_minutes,
    parse_usage_output, register_cleanup,
)

USAGE_SCREEN = """\
 ╭──────────────────────────────────────────────────────────────╮
 │ Settings:  Status   Config   Usage  (tab to cycle)           │
 │                                                              │
 │ Current session                                              │
 │ ███████████▌                                       23% used  │
 │ Resets 2:59pm (America/New_York)                             │
 │                                                              │
 │ Current week (all models)                                    │
 │ █████                                              10% used  │
 │ Resets Oct 24, 9am (America/New_York)                        │
 ╰──────────────────────────────────────────────────────────────╯
"""

PROMPT_SCREEN = """\
 ╭─────────────────────────────────────╮
 │ >                                   │
 ╰─────────────────────────────────────╯
   ? for shortcuts
"""


class FakeTmux:
    """subprocess.run stand-in that simulates a tmux server."""

    def __init__(self, screen=USAGE_SCREEN, session_exists=False):
        self.screen = screen
        self.session_exists = session_exists
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        assert cmd[0] == 'tmux'
        assert 'timeout' in kwargs
        subcommand = cmd[1]
        returncode = 0
        stdout = ''
        if subcommand == 'has-session':
            returncode = 0 if self.session_exists else 1
        elif subcommand == 'new-session':
            self.session_exists = True
        elif subcommand == 'kill-session':
            returncode = 0 if self.session_exists else 1
            self.session_exists = False
        elif subcommand == 'capture-pane':
            stdout = self.screen
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr='')

    def subcommands(self, name):
        return [c for c in self.calls if c[1] == name]

    def keystrokes(self):
        return [c[4:] for c in self.calls if c[1] == 'send-keys']


class TestParseUsageOutput:
    """Tests for parse_usage_output() in verbatim mode."""

    def test_percentage_and_reset(self):
        snapshot = parse_usage_output(USAGE_SCREEN)
        assert snapshot.percentage_used == 23
        assert snapshot.reset_description == 'Resets 2:59pm (America/New_York)'
        assert snapshot.reset_minutes is None

    def test_plain_lines(self):
        screen = 'Current session\n23% used\nResets 2:59pm (America/New_York)\n'
        snapshot = parse_usage_output(screen)
        assert snapshot == QuotaSnapshot(23, 'Resets 2:59pm (America/New_York)')

    def test_no_current_session_marker(self):
        assert parse_usage_output(PROMPT_SCREEN) is None

    def test_marker_but_nothing_found(self):
        assert parse_usage_output('Current session\n\nloading...\n') is None

    def test_empty_screen(self):
        assert parse_usage_output('') is None

    def test_week_section_values_are_ignored(self):
        screen = 'Current session\nloading\nCurrent week (all models)\n80% used\nResets Oct 24, 9am\n'
        assert parse_usage_output(screen) is None

    def test_stops_at_current_week_without_reset(self):
        screen = 'Current session\n5% used\nCurrent week (all models)\nResets Oct 24, 9am\n'
        snapshot = parse_usage_output(screen)
        assert snapshot.percentage_used == 5
        assert snapshot.reset_description == ''

    def test_reset_without_percentage(self):
        snapshot = parse_usage_output('Current session\nResets 3pm (Europe/Paris)\n')
        assert snapshot.percentage_used == 0
        assert snapshot.reset_description == 'Resets 3pm (Europe/Paris)'

    def test_zero_percent_without_reset_is_absent(self):
        assert parse_usage_output('Current session\n0% used\n') is None

    def test_first_percentage_wins(self):
        screen = 'Current session\n23% used\n50% used\nResets 4pm\n'
        assert parse_usage_output(screen).percentage_used == 23

    def test_lines_before_marker_ignored(self):
        screen = '99% used\nResets 1am\nCurrent session\n12% used\nResets 4pm\n'
        snapshot = parse_usage_output(screen)
        assert snapshot.percentage_used == 12
        assert snapshot.reset_description == 'Resets 4pm'


class TestParseUsageCountdown:
    """Tests for parse_usage_output() in countdown mode."""

    def test_later_today(self):
        now = datetime(2026, 10, 19, 14, 0)
        snapshot = parse_usage_output(USAGE_SCREEN, 'countdown', now=now)
        assert snapshot.percentage_used == 23
        assert snapshot.reset_minutes == 59
        assert snapshot.reset_description == '59m remaining until reset'

    def test_already_passed_rolls_to_tomorrow(self):
        now = datetime(2026, 10, 19, 15, 30)
        snapshot = parse_usage_output(USAGE_SCREEN, 'countdown', now=now)
        assert snapshot.reset_minutes == 23 * 60 + 29
        assert snapshot.reset_description == '23h29m remaining until reset'

    def test_hour_without_minutes(self):
        now = datetime(2026, 10, 19, 13, 15)
        snapshot = parse_usage_output('Current session\n40% used\nResets 3pm\n', 'countdown', now=now)
        assert snapshot.reset_description == '1h45m remaining until reset'

    def test_twelve_am_is_midnight(self):
        now = datetime(2026, 10, 19, 23, 0)
        snapshot = parse_usage_output('Current session\nResets 12:00am\n', 'countdown', now=now)
        assert snapshot.reset_minutes == 60

    def test_twelve_pm_is_noon(self):
        now = datetime(2026, 10, 19, 11, 30)
        snapshot = parse_usage_output('Current session\nResets 12:00pm\n', 'countdown', now=now)
        assert snapshot.reset_minutes == 30

    def test_reset_without_clock_time_kept_verbatim(self):
        snapshot = parse_usage_output('Current session\n9% used\nResets soon\n', 'countdown')
        assert snapshot.reset_description == 'Resets soon'
        assert snapshot.reset_minutes is None

    @pytest.mark.parametrize('line', ['Resets 2:75pm', 'Resets 13:00pm', 'Resets 0:30am'])
    def test_impossible_clock_time_kept_verbatim(self, line):
        snapshot = parse_usage_output(f'Current session\n9% used\n{line}\n', 'countdown')
        assert snapshot.reset_description == line
        assert snapshot.reset_minutes is None


class TestFormatResetMinutes:

    def test_minutes_only(self):
        assert format_reset_minutes(45) == '45m remaining until reset'

    def test_hours_and_minutes(self):
        assert format_reset_minutes(125) == '2h5m remaining until reset'

    def test_exact_hours(self):
        assert format_reset_minutes(120) == '2h0m remaining until reset'


class TestTmuxSession:
    """Tests for the TmuxSession handle."""

    def test_target(self):
        assert TmuxSession('s', 'w').target == 's:w'

    def test_create_command(self):
        fake = FakeTmux()
        TmuxSession(command='claude', runner=fake).create()
        assert fake.calls[0] == ['tmux', 'new-session', '-d', '-s', 'claude-usage-checker', '-n', 'usage', 'claude']

    def test_send_text_is_literal(self):
        fake = FakeTmux()
        TmuxSession(runner=fake).send_text('/usage')
        assert fake.calls[0] == ['tmux', 'send-keys', '-t', 'claude-usage-checker:usage', '-l', '--', '/usage']

    def test_failed_command_raises(self):
        runner = MagicMock(return_value=subprocess.CompletedProcess([], 1, stdout='', stderr='no server'))
        with pytest.raises(usage_scraper.TmuxError, match='no server'):
            TmuxSession(runner=runner).capture()

    def test_timeout_raises_tmux_error(self):
        runner = MagicMock(side_effect=subprocess.TimeoutExpired('tmux', 10))
        with pytest.raises(usage_scraper.TmuxError):
            TmuxSession(runner=runner).send_keys('Enter')

    def test_missing_tmux_binary(self):
        runner = MagicMock(side_effect=FileNotFoundError('tmux'))
        with pytest.raises(usage_scraper.TmuxError):
            TmuxSession(runner=runner).exists()

    def test_kill_swallows_errors(self):
        runner = MagicMock(side_effect=FileNotFoundError('tmux'))
        TmuxSession(runner=runner).kill()

    def test_kill_when_session_gone(self):
        fake = FakeTmux(session_exists=False)
        TmuxSession(runner=fake).kill()
        assert fake.subcommands('kill-session')


class TestUsageScraper:
    """Tests for the keystroke state machine and session reuse."""

    def setup_method(self):
        self.sleeps = []
        self.fake = FakeTmux()
        self.scraper = UsageScraper(TmuxSession(runner=self.fake), sleep=self.sleeps.append)

    def test_snapshot_from_new_session(self):
        snapshot = self.scraper.get_quota_snapshot()
        assert snapshot.percentage_used == 23
        assert snapshot.reset_description.startswith('Resets 2:59pm')
        assert len(self.fake.subcommands('new-session')) == 1

    def test_keystroke_sequence_for_new_session(self):
        self.scraper.get_quota_snapshot()
        assert self.fake.keystrokes() == [
            ['-l', '--', '/usage'], ['Escape'], ['Enter'],
            ['Escape', 'Escape', 'C-u'],
            ['-l', '--', '/usage'], ['Escape'], ['Enter'],
        ]
        assert self.sleeps == [
            STARTUP_DELAY, KEY_DELAY, POPUP_DELAY, FIRST_RENDER_DELAY,
            KEY_DELAY, KEY_DELAY, POPUP_DELAY, RENDER_SETTLE,
        ]

    def test_existing_session_is_refreshed_not_created(self):
        self.fake.session_exists = True
        self.scraper.get_quota_snapshot()
        assert self.fake.subcommands('new-session') == []
        assert self.fake.keystrokes()[0] == ['Escape', 'Escape', 'C-u']

    def test_two_calls_create_session_once(self):
        first = self.scraper.get_quota_snapshot()
        second = self.scraper.get_quota_snapshot()
        assert first == second
        assert len(self.fake.subcommands('new-session')) == 1
        assert len(self.fake.subcommands('capture-pane')) == 2

    def test_polls_until_report_renders(self):
        screens = iter([PROMPT_SCREEN, PROMPT_SCREEN, USAGE_SCREEN])
        runner = self.fake

        def capture_sequence(cmd, **kwargs):
            if cmd[1] == 'capture-pane':
                runner.screen = next(screens)
            return runner(cmd, **kwargs)

        scraper = UsageScraper(TmuxSession(runner=capture_sequence), sleep=self.sleeps.append)
        snapshot = scraper.get_quota_snapshot()
        assert snapshot.percentage_used == 23
        assert len(runner.subcommands('capture-pane')) == 3

    def test_render_timeout_parses_partial_screen(self):
        self.fake.screen = PROMPT_SCREEN
        ticks = iter(range(100))
        scraper = UsageScraper(TmuxSession(runner=self.fake), sleep=self.sleeps.append,
                               clock=lambda: next(ticks))
        assert scraper.get_quota_snapshot() is None
        assert len(self.fake.subcommands('capture-pane')) > 1

    def test_countdown_format(self):
        scraper = UsageScraper(TmuxSession(runner=self.fake), reset_format='countdown',
                               sleep=self.sleeps.append)
        snapshot = scraper.get_quota_snapshot()
        assert snapshot.reset_description.endswith('remaining until reset')
        assert snapshot.reset_minutes is not None

    def test_tmux_failure_returns_none(self):
        runner = MagicMock(side_effect=subprocess.TimeoutExpired('tmux', 10))
        scraper = UsageScraper(TmuxSession(runner=runner), sleep=self.sleeps.append)
        assert scraper.get_quota_snapshot() is None

    def test_session_creation_failure_returns_none(self):
        def runner(cmd, **kwargs):
            if cmd[1] == 'has-session':
                return subprocess.CompletedProcess(cmd, 1, stdout='', stderr='')
            return subprocess.CompletedProcess(cmd, 1, stdout='', stderr='duplicate session')

        scraper = UsageScraper(TmuxSession(runner=runner), sleep=self.sleeps.append)
        assert scraper.get_quota_snapshot() is None


class TestRegisterCleanup:
    """Tests for register_cleanup()."""

    def test_registers_exit_and_signal_handlers(self):
        session = TmuxSession(runner=FakeTmux(session_exists=True))
        with patch.object(usage_scraper.atexit, 'register') as mock_register, \
                patch.object(usage_scraper.signal, 'signal') as mock_signal:
            register_cleanup(session)

        mock_register.assert_called_once_with(session.kill)
        signals = [c.args[0] for c in mock_signal.call_args_list]
        assert usage_scraper.signal.SIGINT in signals
        assert usage_scraper.signal.SIGTERM in signals

    def test_signal_handler_kills_session_and_exits_zero(self):
        fake = FakeTmux(session_exists=True)
        session = TmuxSession(runner=fake)
        with patch.object(usage_scraper.atexit, 'register'), \
                patch.object(usage_scraper.signal, 'signal') as mock_signal:
            register_cleanup(session)

        handler = mock_signal.call_args_list[0].args[1]
        with pytest.raises(SystemExit) as exc_info:
            handler(usage_scraper.signal.SIGINT, None)
        assert exc_info.value.code == 0
        assert fake.subcommands('kill-session')
        assert fake.session_exists is False
