"""Data models for VPN session management."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .config import VpnCredentials


class VPNStatus(Enum):
    """VPN connection status"""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class TrustResult(Enum):
    """Outcome of a certificate trust check"""
    TRUSTED = "trusted"
    REJECTED_BY_USER = "rejected_by_user"


class TrustDecision(Enum):
    """Trust decision recorded for one connection attempt"""
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    NOT_REQUIRED = "not_required"


class ConnectOutcome(Enum):
    CONNECTED = "connected"
    ABORTED = "aborted"
    FAILED = "failed"


class ProxyKind(Enum):
    SOCKS = "socks"
    HTTP = "http"


@dataclass
class ProxyState:
    """Snapshot of one proxy after a start, stop or status check"""
    kind: ProxyKind
    port: int
    running: bool = False
    started: bool = False
    error: Optional[str] = None

    @property
    def address(self) -> str:
        if self.kind is ProxyKind.SOCKS:
            return f"localhost:{self.port}"
        return f"http://localhost:{self.port}"

    @property
    def label(self) -> str:
        return "SOCKS5 proxy" if self.kind is ProxyKind.SOCKS else "HTTP proxy"

    def describe(self) -> str:
        line = f"{self.label}: {self.address}"
        if not self.running:
            line += " (not started)" if self.error is None else f" (not started: {self.error})"
        return line


@dataclass
class ConnectionAttempt:
    """State of a single vpn-connect invocation. Never persisted."""
    credentials: VpnCredentials
    presented_fingerprint: Optional[str] = None
    trust_decision: TrustDecision = TrustDecision.NOT_REQUIRED


@dataclass
class ConnectResult:
    outcome: ConnectOutcome
    attempt: ConnectionAttempt
    reason: str = ""
    output: str = ""
    proxies: List[ProxyState] = field(default_factory=list)

    @property
    def connected(self) -> bool:
        return self.outcome is ConnectOutcome.CONNECTED

    def summary(self) -> List[str]:
        """Human readable lines for the CLI and the API."""
        if self.outcome is ConnectOutcome.CONNECTED:
            lines = ["Connected"]
            lines.extend(proxy.describe() for proxy in self.proxies)
            return lines
        if self.outcome is ConnectOutcome.ABORTED:
            return [f"Aborted: {self.reason}"]
        return [f"Failed: {self.reason}"]


@dataclass
class StatusReport:
    vm_running: bool
    vpn_status: VPNStatus
    vpn_output: str = ""
    proxies: List[ProxyState] = field(default_factory=list)
    trusted_fingerprint: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self.vpn_status is VPNStatus.CONNECTED
