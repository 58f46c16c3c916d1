"""Interactive console session with the VPN client, driven through pexpect."""

import time
from typing import List, Optional

import pexpect

from .exceptions import ExternalToolError, VPNTimeoutError
from .prompts import ClientEvent, PromptRules
from .utils import redact
from ..logging_utility import logger


class ConsoleSession:
    """One running client process seen as a stream of ClientEvents.

    ``timeout`` bounds the whole session, counted from ``start()``, not each prompt.
    """

    def __init__(self, argv: List[str], rules: PromptRules, timeout: int = 60):
        self.argv = argv
        self.rules = rules
        self.timeout = timeout
        self.exitstatus: Optional[int] = None
        self._child: Optional[pexpect.spawn] = None
        self._deadline: Optional[float] = None
        self._chunks: List[str] = []
        self._secrets: List[str] = []

    def start(self) -> "ConsoleSession":
        logger.info(f"Spawning: {' '.join(self.argv)}")
        try:
            self._child = pexpect.spawn(
                self.argv[0], self.argv[1:], encoding="utf-8",
                codec_errors="replace", timeout=self.timeout, echo=False,
            )
        except pexpect.ExceptionPexpect as e:
            raise ExternalToolError(f"Could not start {self.argv[0]}: {e}")
        self._deadline = time.monotonic() + self.timeout
        return self

    def __enter__(self) -> "ConsoleSession":
        if self._child is None:
            self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def transcript(self) -> str:
        """Everything the client printed, with secrets masked."""
        text = "".join(self._chunks)
        for secret in self._secrets:
            text = redact(text, secret)
        return text

    def _record(self, value) -> None:
        if isinstance(value, str):
            self._chunks.append(value)

    def next_event(self) -> ClientEvent:
        """Block until the next recognised prompt or the end of the session."""
        remaining = self._deadline - time.monotonic()
        if remaining <= 0:
            self._timed_out()
        patterns = self.rules.patterns()
        index = self._child.expect(patterns + [pexpect.EOF, pexpect.TIMEOUT], timeout=remaining)
        self._record(self._child.before)
        if index == len(patterns):
            self._child.close()
            self.exitstatus = self._child.exitstatus
            if self.exitstatus is None and self._child.signalstatus is not None:
                self.exitstatus = 128 + self._child.signalstatus
            return ClientEvent.session_ended(self.exitstatus)
        if index == len(patterns) + 1:
            self._timed_out()
        self._record(self._child.after)
        return self.rules.event_for(index, self._child.match)

    def _timed_out(self) -> None:
        self.close()
        raise VPNTimeoutError(f"VPN client did not finish within {self.timeout}s")

    def respond(self, text: str, secret: bool = False) -> None:
        if secret:
            self._secrets.append(text)
        self._child.sendline(text)

    def close(self) -> None:
        if self._child is not None and self._child.isalive():
            self._child.close(force=True)
