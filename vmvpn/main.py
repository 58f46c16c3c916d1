from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .logging_utility import logger
from .settings import Settings
from .vpn.config import load_proxy_config, resolve
from .vpn.exceptions import (
    ConfigurationError,
    EnvironmentNotReadyError,
    VPNError,
)
from .vpn.manager import VPNSessionManager
from .vpn.models import ConnectOutcome, ProxyState


class ProxyStatus(BaseModel):
    kind: str
    address: str
    running: bool
    error: Optional[str] = None


class StatusResponse(BaseModel):
    vm_running: bool
    vpn_status: str
    vpn_output: str
    proxies: List[ProxyStatus]
    trusted_fingerprint: Optional[str] = None


class ConnectResponse(BaseModel):
    status: str
    message: str
    fingerprint: Optional[str] = None
    trust_decision: str
    proxies: List[ProxyStatus]


def _proxy_status(state: ProxyState) -> ProxyStatus:
    return ProxyStatus(kind=state.kind.value, address=state.address,
                       running=state.running, error=state.error)


def _reject_prompt(question: str) -> bool:
    # Nobody can answer a prompt over HTTP: unknown or changed certificates are refused.
    logger.warning(f"Declining interactive question over the API: {question}")
    return False


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    app = FastAPI(title="vmvpn")

    def manager() -> VPNSessionManager:
        return VPNSessionManager.from_settings(settings, confirm=_reject_prompt, notify=logger.info)

    @app.get("/status", response_model=StatusResponse)
    def get_status():
        """VPN and proxy status"""
        try:
            report = manager().status(load_proxy_config(settings.vpn_config))
        except VPNError as e:
            logger.error(f"Error getting status: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        return StatusResponse(
            vm_running=report.vm_running,
            vpn_status=report.vpn_status.value,
            vpn_output=report.vpn_output,
            proxies=[_proxy_status(p) for p in report.proxies],
            trusted_fingerprint=report.trusted_fingerprint,
        )

    @app.post("/connect", response_model=ConnectResponse)
    def connect():
        """Connect without prompting. The password must be in the config and the certificate already trusted."""
        try:
            credentials, proxy_config = resolve(settings.vpn_config, prompt=None)
            result = manager().connect(credentials, proxy_config)
        except ConfigurationError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except EnvironmentNotReadyError as e:
            raise HTTPException(status_code=503, detail=str(e))
        except VPNError as e:
            logger.error(f"Error connecting: {e}")
            raise HTTPException(status_code=500, detail=str(e))

        if result.outcome is ConnectOutcome.ABORTED:
            raise HTTPException(
                status_code=409,
                detail=f"{result.reason}: trust the certificate once with 'vmvpn vpn-connect'",
            )
        if result.outcome is ConnectOutcome.FAILED:
            raise HTTPException(status_code=500, detail=result.reason)
        return ConnectResponse(
            status="success",
            message="\n".join(result.summary()),
            fingerprint=result.attempt.presented_fingerprint,
            trust_decision=result.attempt.trust_decision.value,
            proxies=[_proxy_status(p) for p in result.proxies],
        )

    @app.post("/disconnect")
    def disconnect():
        """Disconnect the VPN and stop auto-stop proxies"""
        try:
            manager().disconnect(load_proxy_config(settings.vpn_config))
        except VPNError as e:
            logger.error(f"Error disconnecting: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        return {"status": "success", "message": "VPN disconnected"}

    return app
