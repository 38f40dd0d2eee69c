"""Tests for reachability probers."""

import subprocess
from unittest.mock import MagicMock, patch

import pytest

from reachability_monitor.prober import (
    IcmpProber,
    SystemPingProber,
    build_prober,
)


class TestIcmpProber:
    """Tests for the ping3-based prober."""

    @patch("reachability_monitor.prober.ping3.ping")
    def test_reply_is_alive(self, mock_ping):
        """A round-trip time means alive."""
        mock_ping.return_value = 0.012

        assert IcmpProber().probe("10.0.0.1", timeout=2.0) is True
        mock_ping.assert_called_once_with("10.0.0.1", timeout=2.0)

    @patch("reachability_monitor.prober.ping3.ping")
    def test_zero_rtt_is_alive(self, mock_ping):
        """0.0 seconds is still a reply."""
        mock_ping.return_value = 0.0

        assert IcmpProber().probe("127.0.0.1") is True

    @patch("reachability_monitor.prober.ping3.ping")
    def test_timeout_is_dead(self, mock_ping):
        """No reply before timeout means dead."""
        mock_ping.return_value = None

        assert IcmpProber().probe("10.0.0.1") is False

    @patch("reachability_monitor.prober.ping3.ping")
    def test_error_result_is_dead(self, mock_ping):
        """ping3 reports resolution errors as False."""
        mock_ping.return_value = False

        assert IcmpProber().probe("no-such-host.invalid") is False

    @pytest.mark.parametrize("error", [
        PermissionError("Operation not permitted"),
        OSError("Network is unreachable"),
        RuntimeError("unexpected"),
    ])
    @patch("reachability_monitor.prober.ping3.ping")
    def test_exceptions_never_escape(self, mock_ping, error):
        """Any failure collapses to False."""
        mock_ping.side_effect = error

        assert IcmpProber().probe("10.0.0.1") is False


class TestSystemPingProber:
    """Tests for the ping binary prober."""

    @patch("reachability_monitor.prober.subprocess.run")
    def test_exit_zero_is_alive(self, mock_run):
        """Exit status 0 means a reply arrived."""
        mock_run.return_value = MagicMock(returncode=0)

        assert SystemPingProber(platform="linux").probe("10.0.0.1", timeout=2.0) is True

        cmd = mock_run.call_args[0][0]
        assert cmd == ["ping", "-c", "1", "-W", "2", "10.0.0.1"]
        assert mock_run.call_args[1]["timeout"] == 3.0

    @patch("reachability_monitor.prober.subprocess.run")
    def test_fractional_timeout_rounds_up(self, mock_run):
        """ping -W takes whole seconds."""
        mock_run.return_value = MagicMock(returncode=0)

        SystemPingProber(platform="linux").probe("10.0.0.1", timeout=0.5)

        assert mock_run.call_args[0][0][4] == "1"

    @patch("reachability_monitor.prober.subprocess.run")
    def test_bsd_wait_in_milliseconds(self, mock_run):
        """BSD and macOS ping read -W as milliseconds."""
        mock_run.return_value = MagicMock(returncode=0)

        SystemPingProber(platform="darwin").probe("10.0.0.1", timeout=1.5)

        assert mock_run.call_args[0][0] == ["ping", "-c", "1", "-W", "1500", "10.0.0.1"]

    @patch("reachability_monitor.prober.subprocess.run")
    def test_nonzero_exit_is_dead(self, mock_run):
        """Non-zero exit status means no reply."""
        mock_run.return_value = MagicMock(returncode=1)

        assert SystemPingProber().probe("10.0.0.1") is False

    @pytest.mark.parametrize("error", [
        FileNotFoundError("ping"),
        subprocess.TimeoutExpired(cmd="ping", timeout=3),
    ])
    @patch("reachability_monitor.prober.subprocess.run")
    def test_failures_are_dead(self, mock_run, error):
        """Missing binary or hung child collapse to False."""
        mock_run.side_effect = error

        assert SystemPingProber().probe("10.0.0.1") is False


class TestBuildProber:
    """Tests for prober selection."""

    def test_icmp(self):
        assert isinstance(build_prober("icmp"), IcmpProber)

    @patch("reachability_monitor.prober.shutil.which", return_value="/usr/bin/ping")
    def test_system(self, mock_which):
        prober = build_prober("system")

        assert isinstance(prober, SystemPingProber)
        assert prober.name == "system"

    def test_unknown(self):
        with pytest.raises(ValueError):
            build_prober("snmp")
