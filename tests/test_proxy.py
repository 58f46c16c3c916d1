"""Tests for SOCKS tunnel and HTTP proxy lifecycle."""

from unittest.mock import patch

import pytest

from vmvpn.vpn.config import HttpProxySettings, ProxyConfig, SocksProxySettings
from vmvpn.vpn.models import ProxyKind
from vmvpn.vpn.proxy import HttpProxy, ProxyManager, SocksTunnel


@pytest.fixture
def tunnel(tmp_path):
    return SocksTunnel("vmvpn", 1080, tmp_path / "run")


class TestSignature:
    def test_matches_own_command(self, tunnel):
        assert tunnel.matches(tunnel.command())

    @pytest.mark.parametrize("cmdline", [
        ["/usr/bin/ssh", "-N", "-D", "1080", "lima-vmvpn"],
        ["ssh", "-D1080", "lima-vmvpn"],
        ["ssh", "-D", "localhost:1080", "-N", "lima-vmvpn"],
    ])
    def test_matches_variants(self, tunnel, cmdline):
        assert tunnel.matches(cmdline)

    @pytest.mark.parametrize("cmdline", [
        [],
        ["ssh", "-D", "1081", "lima-vmvpn"],
        ["ssh", "-D", "1080", "lima-other"],
        ["autossh", "-D", "1080", "lima-vmvpn"],
        ["ssh", "-L", "1080:host:80", "lima-vmvpn"],
    ])
    def test_rejects_other_processes(self, tunnel, cmdline):
        assert not tunnel.matches(cmdline)


class TestSocksTunnel:
    def test_start_spawns_and_records_pid(self, tunnel, process_table):
        state = tunnel.start()

        assert state.running and state.started
        assert len(process_table.spawned) == 1
        assert tunnel.pid_file.read_text().strip() == str(process_table.spawned[0].pid)

    def test_start_is_idempotent(self, tunnel, process_table):
        tunnel.start()
        second = tunnel.start()

        assert second.running
        assert not second.started
        assert process_table.count(tunnel.matches) == 1

    def test_adopts_tunnel_without_pid_file(self, tunnel, process_table):
        existing = process_table.add(["ssh", "-N", "-D", "127.0.0.1:1080", "lima-vmvpn"])

        state = tunnel.start()

        assert state.running and not state.started
        assert process_table.spawned == []
        assert tunnel.pid_file.read_text().strip() == str(existing.pid)

    def test_stale_pid_file_is_replaced(self, tunnel, process_table):
        tunnel.state_dir.mkdir(parents=True)
        tunnel.pid_file.write_text("99999\n")

        state = tunnel.start()

        assert state.started
        assert tunnel.pid_file.read_text().strip() == str(process_table.spawned[0].pid)

    def test_port_taken_by_other_process(self, tunnel, process_table):
        with patch("vmvpn.vpn.proxy.port_is_open", return_value=True):
            state = tunnel.start()

        assert not state.running
        assert "already in use" in state.error
        assert process_table.spawned == []

    def test_tunnel_that_never_listens(self, tunnel, process_table):
        with patch("vmvpn.vpn.proxy.wait_for_port", return_value=False):
            state = tunnel.start()

        assert not state.running
        assert state.error
        assert not tunnel.pid_file.exists()
        assert process_table.count(tunnel.matches) == 0

    def test_stop(self, tunnel, process_table):
        tunnel.start()

        assert tunnel.stop() is True
        assert process_table.count(tunnel.matches) == 0
        assert not tunnel.pid_file.exists()

    def test_stop_when_nothing_runs(self, tunnel, process_table):
        assert tunnel.stop() is False


class TestHttpProxy:
    def test_running(self):
        with patch("vmvpn.vpn.proxy.run_command", return_value=("123\n", "", 0)) as run:
            state = HttpProxy("vmvpn", 3128).state()

        assert state.kind is ProxyKind.HTTP
        assert state.running
        assert run.call_args[0][0][-3:] == ["pgrep", "-x", "tinyproxy"]

    def test_not_running(self):
        with patch("vmvpn.vpn.proxy.run_command", return_value=("", "", 1)):
            state = HttpProxy("vmvpn", 3128).state()

        assert not state.running

    def test_vm_down_skips_check(self):
        with patch("vmvpn.vpn.proxy.run_command") as run:
            state = HttpProxy("vmvpn", 3128).state(vm_running=False)

        assert not state.running
        run.assert_not_called()


class TestProxyManager:
    def test_start_configured_socks_only(self, tmp_path, process_table):
        manager = ProxyManager("vmvpn", tmp_path)

        states = manager.start_configured(ProxyConfig())

        assert [s.kind for s in states] == [ProxyKind.SOCKS]
        assert states[0].describe() == "SOCKS5 proxy: localhost:1080"

    def test_socks_without_auto_start_is_not_spawned(self, tmp_path, process_table):
        manager = ProxyManager("vmvpn", tmp_path)
        config = ProxyConfig(socks=SocksProxySettings(auto_start=False))

        states = manager.start_configured(config)

        assert process_table.spawned == []
        assert not states[0].running

    def test_http_reported_not_spawned(self, tmp_path, process_table):
        manager = ProxyManager("vmvpn", tmp_path)
        config = ProxyConfig(
            socks=SocksProxySettings(enabled=False),
            http=HttpProxySettings(enabled=True),
        )

        with patch("vmvpn.vpn.proxy.run_command", return_value=("1\n", "", 0)):
            states = manager.start_configured(config)

        assert process_table.spawned == []
        assert states[0].describe() == "HTTP proxy: http://localhost:3128"

    def test_stop_respects_auto_stop(self, tmp_path, process_table):
        manager = ProxyManager("vmvpn", tmp_path)
        manager.start_configured(ProxyConfig())
        keep = ProxyConfig(socks=SocksProxySettings(auto_stop=False))

        manager.stop_configured(keep)
        assert len(process_table.processes) == 1

        manager.stop_configured(ProxyConfig())
        assert len(process_table.processes) == 0
