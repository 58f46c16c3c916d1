"""Lima VM collaborator: readiness checks and lifecycle passthrough."""

import json
import subprocess
from pathlib import Path
from typing import Optional

from .command_factory import VPNCommandFactory
from .commands import LIMACTL
from .exceptions import EnvironmentNotReadyError, ExternalToolError
from .utils import run_command
from ..logging_utility import logger

LIMA_INSTALL_HELP = (
    "Lima is not installed.\n\n"
    "Install Lima:\n"
    "  Linux:  curl -fsSL https://lima-vm.io/install.sh | bash\n"
    "  macOS:  brew install lima\n\n"
    "See: https://lima-vm.io/"
)


class LimaVM:
    """The VM that hosts the VPN client and the in-VM HTTP proxy."""

    def __init__(self, name: str, template: Optional[Path] = None, timeout: int = 30):
        self.name = name
        self.template = template
        self.timeout = timeout

    def check_installed(self) -> None:
        if not LIMACTL.is_available():
            raise ExternalToolError(LIMA_INSTALL_HELP)

    def info(self) -> Optional[dict]:
        """The VM's entry from `limactl list --json`, or None if it does not exist."""
        self.check_installed()
        stdout, _, _ = run_command(VPNCommandFactory.list_vms(), timeout=self.timeout)
        for line in stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                instance = json.loads(line)
            except json.JSONDecodeError:
                logger.warning(f"Ignoring unparsable limactl output: {line}")
                continue
            if instance.get("name") == self.name:
                return instance
        return None

    def status(self) -> Optional[str]:
        """Lima status string ("Running", "Stopped", ...) or None if the VM does not exist."""
        instance = self.info()
        return instance.get("status") if instance else None

    def exists(self) -> bool:
        return self.status() is not None

    def is_running(self) -> bool:
        return self.status() == "Running"

    def ensure_running(self) -> None:
        status = self.status()
        if status != "Running":
            state = "does not exist" if status is None else f"is {status.lower()}"
            raise EnvironmentNotReadyError(
                f"VM '{self.name}' {state}. Start it with: vmvpn start"
            )

    def start(self) -> None:
        if self.exists():
            logger.info(f"Starting existing VM {self.name}")
            cmd = VPNCommandFactory.start_vm(self.name)
        else:
            if self.template is None:
                raise EnvironmentNotReadyError(
                    f"VM '{self.name}' does not exist and no template is configured. "
                    "Set VMVPN_VM_TEMPLATE to a Lima YAML template."
                )
            logger.info(f"Creating VM {self.name} from {self.template}")
            cmd = VPNCommandFactory.start_vm(self.name, self.template)
        # limactl start streams progress, so it inherits the terminal.
        if subprocess.run(cmd).returncode != 0:
            raise ExternalToolError(f"limactl could not start VM '{self.name}'")

    def stop(self) -> bool:
        """Stop the VM. Returns False if it was not running."""
        self.check_installed()
        _, stderr, returncode = run_command(
            VPNCommandFactory.stop_vm(self.name), check=False, timeout=self.timeout * 4
        )
        if returncode != 0:
            logger.info(f"VM {self.name} was not stopped: {stderr.strip()}")
            return False
        return True

    def delete(self) -> bool:
        """Delete the VM. Returns False if it did not exist."""
        self.check_installed()
        _, stderr, returncode = run_command(
            VPNCommandFactory.delete_vm(self.name), check=False, timeout=self.timeout * 4
        )
        if returncode != 0:
            logger.info(f"VM {self.name} was not deleted: {stderr.strip()}")
            return False
        return True

