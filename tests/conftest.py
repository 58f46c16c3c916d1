"""Pytest fixtures for vmvpn tests."""

import json
import os
import tempfile
from unittest.mock import MagicMock, patch

# Keep the file logger away from the real home directory.
os.environ.setdefault("VMVPN_HOME", tempfile.mkdtemp(prefix="vmvpn-test-"))

import psutil
import pytest
from pydantic import SecretStr

from vmvpn.settings import Settings
from vmvpn.vpn.config import ProxyConfig, VpnCredentials
from vmvpn.vpn.prompts import ClientEvent
from vmvpn.vpn.trust import CertificateTrustStore

FINGERPRINT = ":".join(["AA", "BB", "CC", "DD", "EE", "FF", "00", "11", "22", "33",
                        "44", "55", "66", "77", "88", "99", "AB", "CD", "EF", "01"])
OTHER_FINGERPRINT = ":".join(["12"] * 20)


class ScriptedSession:
    """Stands in for ConsoleSession: replays events and records responses."""

    def __init__(self, events, exit_on_accept=0, exit_on_decline=1, output="", raises=None):
        self.events = list(events)
        self.exit_on_accept = exit_on_accept
        self.exit_on_decline = exit_on_decline
        self.output = output
        self.raises = raises
        self.responses = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def transcript(self):
        return self.output

    def next_event(self):
        if self.raises is not None:
            raise self.raises
        if self.events:
            return self.events.pop(0)
        declined = "n" in self.responses
        return ClientEvent.session_ended(self.exit_on_decline if declined else self.exit_on_accept)

    def respond(self, text, secret=False):
        self.responses.append(text)

    def close(self):
        self.closed = True


class FakeClient:
    """VPN client adapter with scripted connect sessions."""

    def __init__(self, sessions=()):
        self.sessions = list(sessions)
        self.opened = []
        self.calls = []
        self.connected = False

    def edit_profile(self, credentials):
        self.calls.append("edit")

    def open_session(self, credentials):
        self.calls.append("connect")
        session = self.sessions.pop(0)
        self.opened.append(session)
        return session

    def disconnect(self):
        self.calls.append("disconnect")
        was_connected = self.connected
        self.connected = False
        return was_connected

    def status(self):
        if self.connected:
            return True, "Status: Connected"
        return False, "Status: Not connected"


class FakeVM:
    def __init__(self, running=True, name="vmvpn"):
        self.running = running
        self.name = name

    def is_running(self):
        return self.running

    def ensure_running(self):
        from vmvpn.vpn.exceptions import EnvironmentNotReadyError

        if not self.running:
            raise EnvironmentNotReadyError(f"VM '{self.name}' is stopped. Start it with: vmvpn start")


class FakeProcess:
    def __init__(self, table, pid, cmdline):
        self.table = table
        self.pid = pid
        self._cmdline = list(cmdline)
        self.info = {"pid": pid, "cmdline": self._cmdline}

    def cmdline(self):
        return self._cmdline

    def is_running(self):
        return self.pid in self.table.processes

    def poll(self):
        return None if self.is_running() else 255

    def terminate(self):
        self.table.processes.pop(self.pid, None)

    def kill(self):
        self.terminate()

    def wait(self, timeout=None):
        return 0


class FakeProcessTable:
    """psutil + subprocess.Popen stand-in tracking spawned tunnel processes."""

    def __init__(self):
        self.processes = {}
        self.next_pid = 4000
        self.spawned = []

    def add(self, cmdline):
        self.next_pid += 1
        process = FakeProcess(self, self.next_pid, cmdline)
        self.processes[process.pid] = process
        return process

    def popen(self, cmd, **kwargs):
        process = self.add(cmd)
        self.spawned.append(process)
        return process

    def process_iter(self, attrs=None):
        return list(self.processes.values())

    def process(self, pid):
        if pid not in self.processes:
            raise psutil.NoSuchProcess(pid)
        return self.processes[pid]

    def count(self, predicate):
        return sum(1 for p in self.processes.values() if predicate(p.cmdline()))


@pytest.fixture
def process_table():
    table = FakeProcessTable()
    with (
        patch("vmvpn.vpn.proxy.psutil.process_iter", side_effect=table.process_iter),
        patch("vmvpn.vpn.proxy.psutil.Process", side_effect=table.process),
        patch("vmvpn.vpn.proxy.subprocess.Popen", side_effect=table.popen),
        patch("vmvpn.vpn.proxy.wait_for_port", return_value=True),
        patch("vmvpn.vpn.proxy.port_is_open", return_value=False),
    ):
        yield table


@pytest.fixture
def write_config(tmp_path):
    """Write a JSON config file and return its path."""
    def _write(data, name="vpn-config.json"):
        path = tmp_path / name
        path.write_text(json.dumps(data) if not isinstance(data, str) else data)
        return path
    return _write


@pytest.fixture
def credentials():
    return VpnCredentials(
        gateway="vpn.example.com",
        port=443,
        username="alice",
        password=SecretStr("s3cret-pass"),
    )


@pytest.fixture
def proxy_config():
    return ProxyConfig()


@pytest.fixture
def answers():
    """Queue of y/n answers for the trust prompt; records the questions asked."""
    class Answers:
        def __init__(self):
            self.queue = []
            self.questions = []
            self.messages = []

        def confirm(self, question):
            self.questions.append(question)
            return self.queue.pop(0) if self.queue else False

        def notify(self, message):
            self.messages.append(message)

    return Answers()


@pytest.fixture
def trust_store(tmp_path, answers):
    return CertificateTrustStore(tmp_path / "trusted-cert", answers.confirm, answers.notify)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        home=tmp_path / "home",
        vpn_config=tmp_path / "vpn-config.json",
        reconnect_delay=0,
    )


@pytest.fixture
def cli_runner():
    """Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def mock_manager():
    """Patch the CLI's manager factory."""
    manager = MagicMock()
    with patch("vmvpn.cli.build_manager", return_value=manager):
        yield manager
