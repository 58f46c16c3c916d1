"""Custom exceptions for VPN session management."""


class VPNError(Exception):
    """Base exception for VPN-related errors."""
    pass


class ConfigurationError(VPNError):
    """Raised when there's an issue with the VPN configuration"""
    pass


class ConfigNotFoundError(ConfigurationError):
    """Raised when the VPN config file does not exist"""
    pass


class MissingFieldError(ConfigurationError):
    """Raised when a required config field is absent or empty"""

    def __init__(self, field: str, config_path: str = ""):
        self.field = field
        where = f" in {config_path}" if config_path else ""
        super().__init__(f"'{field}' is required{where}")


class EmptyPasswordError(ConfigurationError):
    """Raised when the interactive password prompt is answered with nothing"""
    pass


class EnvironmentNotReadyError(VPNError):
    """Raised when the VM that hosts the VPN client is not running"""
    pass


class ExternalToolError(VPNError):
    """Raised when an external binary is missing or fails"""
    pass


class VPNTimeoutError(VPNError):
    """Raised when an external command does not finish in time"""
    pass
