"""Factory for creating VM, VPN client and tunnel commands."""

from pathlib import Path
from typing import Optional
from .commands import (
    Command,
    FORTIVPN_OPTIONS,
    LIMACTL_LIST,
    LIMACTL_START,
    LIMACTL_STOP,
    LIMACTL_DELETE,
    LIMACTL_SHELL,
    SSH,
    PGREP,
)


class VPNCommandFactory:
    """Factory for creating VM and VPN management commands."""

    @staticmethod
    def list_vms() -> list[str]:
        """Create command listing Lima instances as JSON lines."""
        return LIMACTL_LIST.build()

    @staticmethod
    def start_vm(vm_name: str, template: Optional[Path] = None) -> list[str]:
        """Create VM start command, creating the instance from a template if given."""
        if template is not None:
            return LIMACTL_START.with_options(name=vm_name).with_arg(str(template)).build()
        return LIMACTL_START.with_arg(vm_name).build()

    @staticmethod
    def stop_vm(vm_name: str) -> list[str]:
        return LIMACTL_STOP.with_arg(vm_name).build()

    @staticmethod
    def delete_vm(vm_name: str) -> list[str]:
        return LIMACTL_DELETE.with_arg(vm_name).build()

    @staticmethod
    def vm_shell(vm_name: str) -> list[str]:
        """Create interactive shell command."""
        return LIMACTL_SHELL.with_arg(vm_name).build()

    @staticmethod
    def in_vm(vm_name: str, cmd: Command) -> list[str]:
        """Wrap a command so it runs inside the VM."""
        return LIMACTL_SHELL.with_args(vm_name, "--", *cmd.build()).build()

    @staticmethod
    def vpn_client(client_path: str) -> Command:
        return Command([client_path], _valid_options=FORTIVPN_OPTIONS)

    @staticmethod
    def edit_profile(vm_name: str, client_path: str, profile: str,
                     gateway: str, port: int, username: str) -> list[str]:
        """Create command that points the client profile at the gateway."""
        cmd = (
            VPNCommandFactory.vpn_client(client_path)
            .with_args("edit", profile)
            .with_options(server=f"{gateway}:{port}", user=username)
            .as_sudo()
        )
        return VPNCommandFactory.in_vm(vm_name, cmd)

    @staticmethod
    def connect(vm_name: str, client_path: str, profile: str, username: str) -> list[str]:
        """Create connect command. The client prompts for the password."""
        cmd = (
            VPNCommandFactory.vpn_client(client_path)
            .with_args("connect", profile)
            .with_options(user=username)
            .with_option("password")
            .as_sudo()
        )
        return VPNCommandFactory.in_vm(vm_name, cmd)

    @staticmethod
    def disconnect(vm_name: str, client_path: str) -> list[str]:
        cmd = VPNCommandFactory.vpn_client(client_path).with_arg("disconnect").as_sudo()
        return VPNCommandFactory.in_vm(vm_name, cmd)

    @staticmethod
    def status(vm_name: str, client_path: str) -> list[str]:
        cmd = VPNCommandFactory.vpn_client(client_path).with_arg("status").as_sudo()
        return VPNCommandFactory.in_vm(vm_name, cmd)

    @staticmethod
    def ssh_config_path(vm_name: str) -> Path:
        return Path.home() / ".lima" / vm_name / "ssh.config"

    @staticmethod
    def ssh_login(vm_name: str) -> list[str]:
        """Create plain SSH login command into the VM."""
        return SSH.with_args(
            "-F", str(VPNCommandFactory.ssh_config_path(vm_name)),
            f"lima-{vm_name}",
        ).build()

    @staticmethod
    def socks_tunnel(vm_name: str, port: int) -> list[str]:
        """Create SSH dynamic-forward command serving SOCKS5 on localhost."""
        return SSH.with_args(
            "-F", str(VPNCommandFactory.ssh_config_path(vm_name)),
            "-N",
            "-o", "ExitOnForwardFailure=yes",
            "-D", f"127.0.0.1:{port}",
            f"lima-{vm_name}",
        ).build()

    @staticmethod
    def check_service(vm_name: str, service: str) -> list[str]:
        """Create command checking whether a service runs inside the VM."""
        return VPNCommandFactory.in_vm(vm_name, PGREP.with_args("-x", service))
