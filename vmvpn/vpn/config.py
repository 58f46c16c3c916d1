"""VPN credential and proxy configuration loading."""

import getpass
import json
from pathlib import Path
from typing import Callable, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

from .exceptions import (
    ConfigNotFoundError,
    ConfigurationError,
    EmptyPasswordError,
    MissingFieldError,
)
from ..logging_utility import logger

PasswordPrompt = Callable[[str], str]

EXAMPLE_CONFIG = """{
  "gateway": "vpn.example.com",
  "port": 443,
  "username": "your-username",
  "password": "your-password",
  "socks_proxy": {"enabled": true, "port": 1080, "auto_start": true, "auto_stop": true},
  "http_proxy": {"enabled": false, "port": 3128, "auto_start": false, "auto_stop": false}
}"""


class VpnCredentials(BaseModel):
    """Gateway and login for one connect attempt. Never persisted."""
    model_config = ConfigDict(frozen=True)

    gateway: str
    port: int = Field(default=443, ge=1, le=65535)
    username: str
    password: SecretStr


class ProxySettings(BaseModel):
    enabled: bool
    port: int = Field(ge=1, le=65535)
    auto_start: bool
    auto_stop: bool


class SocksProxySettings(ProxySettings):
    enabled: bool = True
    port: int = Field(default=1080, ge=1, le=65535)
    auto_start: bool = True
    auto_stop: bool = True


class HttpProxySettings(ProxySettings):
    enabled: bool = False
    port: int = Field(default=3128, ge=1, le=65535)
    auto_start: bool = False
    auto_stop: bool = False


class ProxyConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    socks: SocksProxySettings = Field(default_factory=SocksProxySettings, alias="socks_proxy")
    http: HttpProxySettings = Field(default_factory=HttpProxySettings, alias="http_proxy")


class _ConfigFile(BaseModel):
    gateway: str
    port: int = Field(default=443, ge=1, le=65535)
    username: str
    password: Optional[str] = None
    socks_proxy: Optional[SocksProxySettings] = None
    http_proxy: Optional[HttpProxySettings] = None


def prompt_password(message: str) -> str:
    """Masked single-line prompt on the controlling terminal."""
    return getpass.getpass(message)


def _load_json(config_path: Path) -> dict:
    if not config_path.is_file():
        raise ConfigNotFoundError(
            f"VPN config file not found: {config_path}\n\n"
            f"Create it with:\n{EXAMPLE_CONFIG}\n\n"
            "Or copy the example: cp vpn-config.json.example vpn-config.json"
        )
    try:
        with open(config_path, "r") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {config_path}: {e}")
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{config_path} must contain a JSON object")
    return raw


def _drop_nulls(section):
    if isinstance(section, dict):
        return {key: value for key, value in section.items() if value is not None}
    return section


def resolve(config_path: Path,
            prompt: Optional[PasswordPrompt] = prompt_password) -> Tuple[VpnCredentials, ProxyConfig]:
    """
    Load credentials and proxy settings from a JSON config file.

    Args:
        config_path: Path to the JSON config
        prompt: Masked prompt used when the file has no password. None means
            the caller cannot prompt, so a missing password is an error.

    Returns:
        Tuple of (credentials, proxy configuration)
    """
    config_path = Path(config_path)
    raw = _load_json(config_path)

    for field in ("gateway", "username"):
        value = raw.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise MissingFieldError(field, str(config_path))

    data = {key: value for key, value in raw.items() if value is not None}
    for section in ("socks_proxy", "http_proxy"):
        if section in data:
            data[section] = _drop_nulls(data[section])

    try:
        parsed = _ConfigFile.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid VPN config {config_path}:\n{e}")

    password = parsed.password
    if not password:
        if prompt is None:
            raise MissingFieldError("password", str(config_path))
        logger.info("No password in config, prompting")
        password = prompt(f"VPN password for {parsed.username}@{parsed.gateway}: ")
        if not password:
            raise EmptyPasswordError("Password cannot be empty")

    credentials = VpnCredentials(
        gateway=parsed.gateway.strip(),
        port=parsed.port,
        username=parsed.username.strip(),
        password=SecretStr(password),
    )
    proxies = ProxyConfig(
        socks=parsed.socks_proxy or SocksProxySettings(),
        http=parsed.http_proxy or HttpProxySettings(),
    )
    logger.info(f"Loaded VPN config for {credentials.username}@{credentials.gateway}:{credentials.port}")
    return credentials, proxies


def load_proxy_config(config_path: Path) -> ProxyConfig:
    """Read only the proxy sections. Used by disconnect and status."""
    config_path = Path(config_path)
    if not config_path.is_file():
        logger.info(f"No VPN config at {config_path}, using default proxy settings")
        return ProxyConfig()
    raw = _load_json(config_path)
    try:
        return ProxyConfig.model_validate({
            key: _drop_nulls(raw[key]) for key in ("socks_proxy", "http_proxy") if raw.get(key) is not None
        })
    except ValidationError as e:
        raise ConfigurationError(f"Invalid proxy settings in {config_path}:\n{e}")
