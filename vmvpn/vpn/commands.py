"""Command templates and builders for the VM, the VPN client and SSH."""

import shutil
from typing import List, Optional, Dict
from dataclasses import dataclass
from pathlib import Path

from .exceptions import VPNError


class CommandError(VPNError):
    """Raised when a command cannot be built as requested."""
    pass


class CommandValidationError(CommandError):
    """Raised when an option or its value is not valid for the command."""
    pass


@dataclass
class Command:
    """Command builder with validation."""
    base_cmd: List[str]
    use_sudo: bool = False
    _valid_options: Optional[Dict[str, type]] = None

    def _validate_option(self, opt: str, value: Optional[str]) -> None:
        """Validate option and its value if validation rules exist."""
        if self._valid_options is not None:
            # Remove leading dashes for validation
            opt_name = opt.lstrip('-').replace('-', '_')

            if opt_name not in self._valid_options:
                valid_opts = ", ".join(f"--{opt.replace('_', '-')}"
                                       for opt in self._valid_options.keys())
                raise CommandValidationError(
                    f"Invalid option '{opt}' for command {self.base_cmd[0]}. "
                    f"Valid options are: {valid_opts}"
                )

            if value is not None:
                expected_type = self._valid_options[opt_name]
                try:
                    if expected_type == Path:
                        Path(value)
                    else:
                        expected_type(value)
                except (TypeError, ValueError):
                    raise CommandValidationError(
                        f"Invalid value '{value}' for option '{opt}'. Expected {expected_type.__name__}"
                    )

    def _validate_executable(self) -> None:
        """Validate that base command exists."""
        if not self.base_cmd:
            raise CommandValidationError("Command cannot be empty")

    @property
    def executable(self) -> str:
        return self.base_cmd[0]

    def is_available(self) -> bool:
        """Whether the executable can be found on PATH."""
        return shutil.which(self.executable) is not None

    @classmethod
    def from_str(cls, cmd: str, use_sudo: bool = False, valid_options: Optional[Dict[str, type]] = None) -> 'Command':
        """Create command from string with optional validation rules."""
        command = cls(cmd.split(), use_sudo, valid_options)
        command._validate_executable()
        return command

    def with_arg(self, arg: str) -> 'Command':
        """Add single argument."""
        return Command(self.base_cmd + [arg], self.use_sudo, self._valid_options)

    def with_args(self, *args: str) -> 'Command':
        """Add multiple arguments."""
        return Command(self.base_cmd + list(args), self.use_sudo, self._valid_options)

    def with_option(self, opt: str, value: Optional[str] = None) -> 'Command':
        """Add option with validation."""
        opt_clean = opt.lstrip('-')
        self._validate_option(opt_clean, value)
        cmd = self.base_cmd.copy()
        cmd.append(f"--{opt_clean.replace('_', '-')}")
        if value is not None:
            cmd.append(str(value))
        return Command(cmd, self.use_sudo, self._valid_options)

    def with_options(self, **kwargs: Optional[str]) -> 'Command':
        """Add multiple options with validation."""
        cmd = self.base_cmd.copy()
        for opt, value in kwargs.items():
            self._validate_option(opt, str(value) if value is not None else None)
            cmd.append("--" + opt.replace("_", "-"))
            if value is not None:
                cmd.append(str(value))
        return Command(cmd, self.use_sudo, self._valid_options)

    def as_sudo(self) -> 'Command':
        """Mark command to be executed with sudo."""
        return Command(self.base_cmd, True, self._valid_options)

    def build(self) -> List[str]:
        """Get final command list."""
        self._validate_executable()
        return ["sudo"] + self.base_cmd if self.use_sudo else self.base_cmd


LIMACTL_OPTIONS = {
    'name': str,
    'json': type(None),
    'force': type(None),
}

FORTIVPN_OPTIONS = {
    'server': str,
    'user': str,
    'password': type(None),
}


LIMACTL = Command.from_str("limactl", valid_options=LIMACTL_OPTIONS)
LIMACTL_LIST = LIMACTL.with_arg("list").with_option("json")
LIMACTL_START = LIMACTL.with_arg("start")
LIMACTL_STOP = LIMACTL.with_arg("stop")
LIMACTL_DELETE = LIMACTL.with_arg("delete").with_option("force")
LIMACTL_SHELL = LIMACTL.with_arg("shell")

SSH = Command.from_str("ssh")

PGREP = Command.from_str("pgrep")
