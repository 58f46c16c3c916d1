"""Runtime settings for vmvpn, read from the environment."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel


def _default_home() -> Path:
    return Path(os.getenv("VMVPN_HOME", str(Path.home() / ".vmvpn"))).expanduser()


class Settings(BaseModel):
    """Locations, names and timeouts used by every command."""

    home: Path
    vpn_config: Path
    vm_name: str = "vmvpn"
    vm_template: Optional[Path] = None
    client_path: str = "/opt/forticlient/fortivpn"
    profile: str = "vpn-tunnel"
    connect_timeout: int = 60
    command_timeout: int = 30
    reconnect_delay: float = 2.0
    http_proxy_service: str = "tinyproxy"
    log_level: str = "INFO"

    @property
    def trust_store_path(self) -> Path:
        return self.home / "trusted-cert"

    @property
    def state_dir(self) -> Path:
        return self.home / "run"

    @property
    def log_file(self) -> Path:
        return self.home / "logs" / "vmvpn.log"

    @classmethod
    def from_env(cls, vpn_config: Optional[Path] = None) -> "Settings":
        home = _default_home()
        template = os.getenv("VMVPN_VM_TEMPLATE")
        settings = cls(
            home=home,
            vpn_config=vpn_config or Path(os.getenv("VPN_CONFIG", str(home / "vpn-config.json"))).expanduser(),
            vm_name=os.getenv("VMVPN_VM_NAME", "vmvpn"),
            vm_template=Path(template).expanduser() if template else None,
            client_path=os.getenv("VMVPN_CLIENT_PATH", "/opt/forticlient/fortivpn"),
            profile=os.getenv("VMVPN_PROFILE", "vpn-tunnel"),
            connect_timeout=int(os.getenv("VMVPN_CONNECT_TIMEOUT", "60")),
            command_timeout=int(os.getenv("VMVPN_COMMAND_TIMEOUT", "30")),
            reconnect_delay=float(os.getenv("VMVPN_RECONNECT_DELAY", "2.0")),
            http_proxy_service=os.getenv("VMVPN_HTTP_PROXY_SERVICE", "tinyproxy"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
        settings.validate_values()
        return settings

    def validate_values(self) -> None:
        """Validate the settings."""
        if self.connect_timeout < 1:
            raise ValueError("Invalid connect timeout")
        if self.command_timeout < 1:
            raise ValueError("Invalid command timeout")
        if self.reconnect_delay < 0:
            raise ValueError("Invalid reconnect delay")
        if not self.vm_name:
            raise ValueError("VM name is required")
