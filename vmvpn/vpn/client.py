"""Adapter for the FortiClient VPN binary running inside the VM."""

from typing import Tuple

from .command_factory import VPNCommandFactory
from .config import VpnCredentials
from .exceptions import VPNError
from .prompts import FORTIVPN_RULES, PromptRules
from .session import ConsoleSession
from .utils import run_command
from ..logging_utility import logger


def parse_connected(output: str) -> bool:
    """Whether a `status` transcript reports an established tunnel."""
    text = output.lower()
    if "not connected" in text or "disconnected" in text:
        return False
    return "connected" in text


class FortiVPNClient:
    """Runs the VPN client through `limactl shell <vm> -- sudo <client>`."""

    def __init__(self, vm_name: str, client_path: str = "/opt/forticlient/fortivpn",
                 profile: str = "vpn-tunnel", command_timeout: int = 30,
                 connect_timeout: int = 60, rules: PromptRules = FORTIVPN_RULES):
        self.vm_name = vm_name
        self.client_path = client_path
        self.profile = profile
        self.command_timeout = command_timeout
        self.connect_timeout = connect_timeout
        self.rules = rules

    def edit_profile(self, credentials: VpnCredentials) -> None:
        """Point the client profile at the configured gateway."""
        logger.info(f"Configuring profile {self.profile} for {credentials.gateway}:{credentials.port}")
        run_command(
            VPNCommandFactory.edit_profile(
                self.vm_name, self.client_path, self.profile,
                credentials.gateway, credentials.port, credentials.username,
            ),
            timeout=self.command_timeout,
        )

    def open_session(self, credentials: VpnCredentials) -> ConsoleSession:
        """Start an interactive connect attempt."""
        argv = VPNCommandFactory.connect(
            self.vm_name, self.client_path, self.profile, credentials.username
        )
        return ConsoleSession(argv, self.rules, timeout=self.connect_timeout).start()

    def disconnect(self) -> bool:
        """Disconnect the tunnel. Failures (already disconnected) are not errors."""
        try:
            _, stderr, returncode = run_command(
                VPNCommandFactory.disconnect(self.vm_name, self.client_path),
                check=False, timeout=self.command_timeout,
            )
        except VPNError as e:
            logger.warning(f"VPN disconnect failed: {e}")
            return False
        if returncode != 0:
            logger.info(f"VPN disconnect returned {returncode}: {stderr.strip()}")
            return False
        return True

    def status(self) -> Tuple[bool, str]:
        """Return (connected, raw status text)."""
        stdout, stderr, returncode = run_command(
            VPNCommandFactory.status(self.vm_name, self.client_path),
            check=False, timeout=self.command_timeout,
        )
        output = (stdout or stderr).strip()
        if returncode != 0:
            return False, output or "VPN is not connected."
        return parse_connected(output), output
