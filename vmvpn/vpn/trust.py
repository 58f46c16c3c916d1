"""Trust-on-first-use pinning of the VPN server certificate fingerprint."""

import os
import tempfile
from pathlib import Path
from typing import Callable, Optional

from .models import TrustResult
from .prompts import normalize_fingerprint
from ..logging_utility import logger

Confirm = Callable[[str], bool]
Notify = Callable[[str], None]


class CertificateTrustStore:
    """
    Single-valued fingerprint store backed by a one-line text file.

    The file is written only from ``verify`` and only after the user agreed.
    """

    def __init__(self, path: Path, confirm: Confirm, notify: Notify):
        self.path = Path(path)
        self.confirm = confirm
        self.notify = notify

    def fingerprint(self) -> Optional[str]:
        """Currently trusted fingerprint, or None if nothing is trusted yet."""
        try:
            value = self.path.read_text().strip()
        except FileNotFoundError:
            return None
        return normalize_fingerprint(value) if value else None

    def verify(self, presented: str) -> TrustResult:
        presented = normalize_fingerprint(presented)
        stored = self.fingerprint()

        if stored is None:
            self.notify(
                "The VPN server presented a certificate that has not been trusted yet.\n"
                f"  SHA1 fingerprint: {presented}"
            )
            if not self.confirm("Trust this certificate and continue?"):
                logger.warning(f"User declined first-use certificate {presented}")
                return TrustResult.REJECTED_BY_USER
            self._save(presented)
            logger.info(f"Trusted new certificate {presented}")
            return TrustResult.TRUSTED

        if stored == presented:
            self.notify(f"Server certificate matches the trusted fingerprint ({presented}).")
            return TrustResult.TRUSTED

        self.notify(
            "WARNING: THE VPN SERVER CERTIFICATE HAS CHANGED.\n"
            "Someone could be intercepting the connection (man-in-the-middle),\n"
            "or the server certificate was legitimately rotated.\n"
            f"  Trusted fingerprint:   {stored}\n"
            f"  Presented fingerprint: {presented}"
        )
        if not self.confirm("Trust the new certificate and replace the old one?"):
            logger.warning(f"User rejected changed certificate {presented} (trusted: {stored})")
            return TrustResult.REJECTED_BY_USER
        self._save(presented)
        logger.warning(f"Trusted fingerprint replaced: {stored} -> {presented}")
        return TrustResult.TRUSTED

    def _save(self, fingerprint: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".trusted-cert.")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(fingerprint + "\n")
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            os.unlink(tmp_path)
            raise
