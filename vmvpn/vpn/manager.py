"""VPN session orchestration: connect, disconnect and status."""

import time
from dataclasses import dataclass
from typing import Optional

from .client import FortiVPNClient
from .config import ProxyConfig, VpnCredentials
from .exceptions import ExternalToolError, VPNError, VPNTimeoutError
from .models import (
    ConnectionAttempt,
    ConnectOutcome,
    ConnectResult,
    StatusReport,
    TrustDecision,
    TrustResult,
    VPNStatus,
)
from .prompts import EventKind
from .proxy import ProxyManager
from .trust import CertificateTrustStore, Confirm, Notify
from .utils import log_client_output
from .vm import LimaVM
from ..logging_utility import logger
from ..settings import Settings

# A second password prompt in one attempt means the password was refused.
MAX_PASSWORD_PROMPTS = 2
# Fingerprint and confirmation events allowed in one attempt before it is abandoned.
MAX_CERTIFICATE_EVENTS = 6


@dataclass
class AttemptOutcome:
    """What one run of the client's connect command showed us."""
    fingerprint: Optional[str]
    output: str
    exit_status: Optional[int]
    declined_certificate: bool = False
    password_refused: bool = False

    @property
    def succeeded(self) -> bool:
        return (
            self.exit_status == 0
            and not self.declined_certificate
            and not self.password_refused
        )


class VPNSessionManager:
    def __init__(self, vm: LimaVM, client: FortiVPNClient, trust_store: CertificateTrustStore,
                 proxies: ProxyManager, reconnect_delay: float = 2.0):
        self.vm = vm
        self.client = client
        self.trust_store = trust_store
        self.proxies = proxies
        self.reconnect_delay = reconnect_delay

    @classmethod
    def from_settings(cls, settings: Settings, confirm: Confirm, notify: Notify) -> "VPNSessionManager":
        return cls(
            vm=LimaVM(settings.vm_name, settings.vm_template, timeout=settings.command_timeout),
            client=FortiVPNClient(
                settings.vm_name,
                client_path=settings.client_path,
                profile=settings.profile,
                command_timeout=settings.command_timeout,
                connect_timeout=settings.connect_timeout,
            ),
            trust_store=CertificateTrustStore(settings.trust_store_path, confirm, notify),
            proxies=ProxyManager(
                settings.vm_name,
                settings.state_dir,
                http_service=settings.http_proxy_service,
                command_timeout=settings.command_timeout,
            ),
            reconnect_delay=settings.reconnect_delay,
        )

    def _run_attempt(self, credentials: VpnCredentials, approved: Optional[str] = None) -> AttemptOutcome:
        """
        Drive one connect command through its prompts.

        Args:
            credentials: Login for the gateway
            approved: Fingerprint the user already trusted. The certificate
                confirmation is answered "y" only when the client announced
                exactly this fingerprint; otherwise it is answered "n".

        Returns:
            AttemptOutcome with the captured fingerprint and transcript
        """
        password = credentials.password.get_secret_value()
        fingerprint = None
        declined = False
        password_prompts = 0
        certificate_events = 0

        session = self.client.open_session(credentials)
        with session:
            while True:
                event = session.next_event()
                if event.kind is EventKind.PASSWORD_REQUESTED:
                    password_prompts += 1
                    if password_prompts >= MAX_PASSWORD_PROMPTS:
                        logger.error("VPN client asked for the password again, giving up")
                        session.close()
                        return AttemptOutcome(fingerprint, session.transcript, None, declined, password_refused=True)
                    session.respond(password, secret=True)
                    continue
                if event.kind is EventKind.SESSION_ENDED:
                    return AttemptOutcome(fingerprint, session.transcript, event.exit_status, declined)
                certificate_events += 1
                if certificate_events > MAX_CERTIFICATE_EVENTS:
                    session.close()
                    raise ExternalToolError(
                        f"VPN client repeated certificate prompts {certificate_events} times, giving up"
                    )
                if event.kind is EventKind.FINGERPRINT_ANNOUNCED:
                    logger.info(f"Server presented certificate {event.fingerprint}")
                    fingerprint = event.fingerprint
                elif event.kind is EventKind.CONFIRMATION_REQUESTED:
                    accept = approved is not None and fingerprint == approved
                    if approved is not None and not accept:
                        logger.error(f"Certificate changed during reconnect: {fingerprint} (approved {approved})")
                    declined = declined or not accept
                    session.respond("y" if accept else "n")

    def connect(self, credentials: VpnCredentials, proxy_config: ProxyConfig) -> ConnectResult:
        """
        Connect the VPN, settling certificate trust on the way, then start proxies.

        Raises:
            EnvironmentNotReadyError: the VM is not running
        """
        self.vm.ensure_running()
        attempt = ConnectionAttempt(credentials=credentials)
        password = credentials.password.get_secret_value()

        logger.info(f"Connecting to VPN {credentials.gateway}:{credentials.port} as {credentials.username}")
        try:
            self.client.edit_profile(credentials)
            first = self._run_attempt(credentials)
        except (ExternalToolError, VPNTimeoutError) as e:
            logger.error(f"First connection attempt failed: {e}")
            return ConnectResult(ConnectOutcome.FAILED, attempt, reason=str(e))

        attempt.presented_fingerprint = first.fingerprint
        final = first
        if first.password_refused or (first.fingerprint is None and not first.succeeded):
            log_client_output(first.output, password)
            return ConnectResult(ConnectOutcome.FAILED, attempt,
                                 reason=self._failure_reason(first), output=first.output)

        if first.fingerprint is not None:
            if self.trust_store.verify(first.fingerprint) is TrustResult.REJECTED_BY_USER:
                attempt.trust_decision = TrustDecision.REJECTED
                self.client.disconnect()
                logger.warning("Connection aborted: certificate rejected")
                return ConnectResult(ConnectOutcome.ABORTED, attempt,
                                     reason="certificate rejected", output=first.output)

            attempt.trust_decision = TrustDecision.ACCEPTED
            if first.succeeded:
                # The client connected without asking for confirmation.
                logger.info("VPN connected")
                proxies = self.proxies.start_configured(proxy_config)
                return ConnectResult(ConnectOutcome.CONNECTED, attempt, output=first.output, proxies=proxies)
            self.client.disconnect()
            time.sleep(self.reconnect_delay)
            logger.info("Reconnecting with the trusted certificate")
            try:
                final = self._run_attempt(credentials, approved=first.fingerprint)
            except (ExternalToolError, VPNTimeoutError) as e:
                logger.error(f"Second connection attempt failed: {e}")
                return ConnectResult(ConnectOutcome.FAILED, attempt, reason=str(e))
            if not final.succeeded:
                log_client_output(final.output, password)
                return ConnectResult(ConnectOutcome.FAILED, attempt,
                                     reason=self._failure_reason(final), output=final.output)

        logger.info("VPN connected")
        proxies = self.proxies.start_configured(proxy_config)
        return ConnectResult(ConnectOutcome.CONNECTED, attempt, output=final.output, proxies=proxies)

    @staticmethod
    def _failure_reason(outcome: AttemptOutcome) -> str:
        if outcome.password_refused:
            return "password refused by the VPN gateway"
        if outcome.declined_certificate and outcome.fingerprint is not None:
            return f"server certificate {outcome.fingerprint} was not accepted"
        if outcome.declined_certificate:
            return "server certificate was not accepted"
        detail = outcome.output.strip() or "no output"
        return f"VPN client exited with status {outcome.exit_status}: {detail}"

    def disconnect(self, proxy_config: ProxyConfig) -> None:
        """Stop auto-stop proxies and disconnect. Safe to call when nothing is connected."""
        self.proxies.stop_configured(proxy_config)
        if not self.vm.is_running():
            logger.info("VM is not running, nothing to disconnect")
            return
        if self.client.disconnect():
            logger.info("VPN disconnected")
        else:
            logger.info("VPN was not connected")

    def status(self, proxy_config: ProxyConfig) -> StatusReport:
        vm_running = self.vm.is_running()
        if vm_running:
            try:
                connected, output = self.client.status()
            except VPNError as e:
                logger.warning(f"Could not query VPN status: {e}")
                connected, output = False, str(e)
        else:
            connected, output = False, f"VM '{self.vm.name}' is not running."
        return StatusReport(
            vm_running=vm_running,
            vpn_status=VPNStatus.CONNECTED if connected else VPNStatus.DISCONNECTED,
            vpn_output=output,
            proxies=self.proxies.report(proxy_config, vm_running),
            trusted_fingerprint=self.trust_store.fingerprint(),
        )
