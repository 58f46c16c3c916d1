"""Proxy lifecycle: the host-side SOCKS tunnel and the in-VM HTTP proxy."""

import fcntl
import os
import subprocess
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import psutil

from .command_factory import VPNCommandFactory
from .config import ProxyConfig
from .exceptions import VPNError
from .models import ProxyKind, ProxyState
from .utils import port_is_open, run_command, wait_for_port
from ..logging_utility import logger


class SocksTunnel:
    """
    SSH dynamic forward from localhost into the VM.

    The spawned process is recorded in a pid file. A tunnel without a valid pid
    file (crash, older run) is found again by its command line and adopted.
    """

    def __init__(self, vm_name: str, port: int, state_dir: Path,
                 startup_attempts: int = 20, startup_delay: float = 0.5):
        self.vm_name = vm_name
        self.port = port
        self.state_dir = Path(state_dir)
        self.startup_attempts = startup_attempts
        self.startup_delay = startup_delay

    @property
    def pid_file(self) -> Path:
        return self.state_dir / f"socks-{self.port}.pid"

    @property
    def log_file(self) -> Path:
        return self.state_dir / f"socks-{self.port}.log"

    @property
    def lock_file(self) -> Path:
        return self.state_dir / f"socks-{self.port}.lock"

    def command(self) -> List[str]:
        return VPNCommandFactory.socks_tunnel(self.vm_name, self.port)

    def matches(self, cmdline: List[str]) -> bool:
        """Whether a process command line is this tunnel (ssh, -D <port>, lima-<vm>)."""
        if not cmdline or os.path.basename(cmdline[0]) != "ssh":
            return False
        if f"lima-{self.vm_name}" not in cmdline:
            return False
        for i, arg in enumerate(cmdline):
            if arg == "-D" and i + 1 < len(cmdline):
                bind = cmdline[i + 1]
            elif arg.startswith("-D") and len(arg) > 2:
                bind = arg[2:]
            else:
                continue
            if bind.rsplit(":", 1)[-1] == str(self.port):
                return True
        return False

    def _read_pid(self) -> Optional[int]:
        try:
            return int(self.pid_file.read_text().strip())
        except (FileNotFoundError, ValueError):
            return None

    def _write_pid(self, pid: int) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        self.pid_file.write_text(f"{pid}\n")

    def _clear_pid(self) -> None:
        try:
            self.pid_file.unlink()
        except FileNotFoundError:
            pass

    def find(self) -> Optional[psutil.Process]:
        """Return the running tunnel process, if any."""
        pid = self._read_pid()
        if pid is not None:
            try:
                proc = psutil.Process(pid)
                if proc.is_running() and self.matches(proc.cmdline()):
                    return proc
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                pass
            logger.info(f"Stale SOCKS pid file for pid {pid}, removing")
            self._clear_pid()

        for proc in psutil.process_iter(["pid", "cmdline"]):
            if self.matches(proc.info.get("cmdline") or []):
                logger.info(f"Adopting running SOCKS tunnel (pid {proc.pid})")
                self._write_pid(proc.pid)
                return proc
        return None

    @contextmanager
    def _lock(self) -> Iterator[None]:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        with open(self.lock_file, "w") as f:
            fcntl.flock(f, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(f, fcntl.LOCK_UN)

    def _log_tail(self, lines: int = 5) -> str:
        try:
            content = self.log_file.read_text(errors="replace").strip().splitlines()
        except FileNotFoundError:
            return ""
        return " ".join(content[-lines:])

    def state(self) -> ProxyState:
        return ProxyState(ProxyKind.SOCKS, self.port, running=self.find() is not None)

    def start(self) -> ProxyState:
        """Start the tunnel unless one is already running."""
        with self._lock():
            if self.find() is not None:
                logger.info(f"SOCKS tunnel on port {self.port} already running")
                return ProxyState(ProxyKind.SOCKS, self.port, running=True)

            if port_is_open(self.port):
                error = f"port {self.port} is already in use by another process"
                logger.error(f"Cannot start SOCKS tunnel: {error}")
                return ProxyState(ProxyKind.SOCKS, self.port, error=error)

            cmd = self.command()
            logger.info(f"Starting SOCKS tunnel: {' '.join(cmd)}")
            try:
                with open(self.log_file, "ab") as log:
                    process = subprocess.Popen(
                        cmd,
                        stdin=subprocess.DEVNULL,
                        stdout=subprocess.DEVNULL,
                        stderr=log,
                        start_new_session=True,
                    )
            except OSError as e:
                logger.error(f"Could not spawn SOCKS tunnel: {e}")
                return ProxyState(ProxyKind.SOCKS, self.port, error=str(e))
            self._write_pid(process.pid)

            ready = wait_for_port(
                self.port,
                max_attempts=self.startup_attempts,
                delay=self.startup_delay,
                alive=lambda: process.poll() is None,
            )
            if not ready or process.poll() is not None:
                if process.poll() is None:
                    process.terminate()
                self._clear_pid()
                error = self._log_tail() or "tunnel did not start listening"
                logger.error(f"SOCKS tunnel failed: {error}")
                return ProxyState(ProxyKind.SOCKS, self.port, error=error)

            logger.info(f"SOCKS tunnel listening on 127.0.0.1:{self.port} (pid {process.pid})")
            return ProxyState(ProxyKind.SOCKS, self.port, running=True, started=True)

    def stop(self) -> bool:
        """Stop the tunnel. Returns False if none was running."""
        with self._lock():
            proc = self.find()
            if proc is None:
                self._clear_pid()
                return False
            logger.info(f"Stopping SOCKS tunnel (pid {proc.pid})")
            try:
                proc.terminate()
                proc.wait(timeout=5)
            except psutil.TimeoutExpired:
                proc.kill()
            except psutil.NoSuchProcess:
                pass
            self._clear_pid()
            return True


class HttpProxy:
    """HTTP proxy service that always runs inside the VM. Only observed, never spawned."""

    def __init__(self, vm_name: str, port: int, service: str = "tinyproxy", timeout: int = 30):
        self.vm_name = vm_name
        self.port = port
        self.service = service
        self.timeout = timeout

    def is_running(self) -> bool:
        try:
            _, _, returncode = run_command(
                VPNCommandFactory.check_service(self.vm_name, self.service),
                check=False, timeout=self.timeout,
            )
        except VPNError as e:
            logger.warning(f"Could not check {self.service} in VM: {e}")
            return False
        return returncode == 0

    def state(self, vm_running: bool = True) -> ProxyState:
        running = vm_running and self.is_running()
        error = None if running else f"{self.service} is not running in the VM"
        return ProxyState(ProxyKind.HTTP, self.port, running=running, error=error)


class ProxyManager:
    """Applies a ProxyConfig to the SOCKS tunnel and the HTTP proxy."""

    def __init__(self, vm_name: str, state_dir: Path, http_service: str = "tinyproxy",
                 command_timeout: int = 30):
        self.vm_name = vm_name
        self.state_dir = Path(state_dir)
        self.http_service = http_service
        self.command_timeout = command_timeout

    def socks(self, port: int) -> SocksTunnel:
        return SocksTunnel(self.vm_name, port, self.state_dir)

    def http(self, port: int) -> HttpProxy:
        return HttpProxy(self.vm_name, port, self.http_service, self.command_timeout)

    def start_configured(self, config: ProxyConfig) -> List[ProxyState]:
        states = []
        if config.socks.enabled:
            tunnel = self.socks(config.socks.port)
            states.append(tunnel.start() if config.socks.auto_start else tunnel.state())
        if config.http.enabled:
            states.append(self.http(config.http.port).state())
        return states

    def stop_configured(self, config: ProxyConfig) -> List[ProxyState]:
        states = []
        if config.socks.auto_stop:
            tunnel = self.socks(config.socks.port)
            if tunnel.stop():
                logger.info(f"SOCKS proxy on port {config.socks.port} stopped")
            states.append(ProxyState(ProxyKind.SOCKS, config.socks.port, running=False))
        return states

    def report(self, config: ProxyConfig, vm_running: bool = True) -> List[ProxyState]:
        states = []
        if config.socks.enabled:
            states.append(self.socks(config.socks.port).state())
        if config.http.enabled:
            states.append(self.http(config.http.port).state(vm_running))
        return states
