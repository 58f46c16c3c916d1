"""Console prompt rules for the VPN client.

The client only talks to us through its interactive console. The rules below
turn that text into a small set of tagged events so the orchestration code never
matches strings itself. A different client version gets a different
``PromptRules`` instance.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Pattern


class EventKind(Enum):
    PASSWORD_REQUESTED = "password_requested"
    FINGERPRINT_ANNOUNCED = "fingerprint_announced"
    CONFIRMATION_REQUESTED = "confirmation_requested"
    SESSION_ENDED = "session_ended"


@dataclass(frozen=True)
class ClientEvent:
    kind: EventKind
    fingerprint: Optional[str] = None
    exit_status: Optional[int] = None

    @classmethod
    def password_requested(cls) -> "ClientEvent":
        return cls(EventKind.PASSWORD_REQUESTED)

    @classmethod
    def fingerprint_announced(cls, fingerprint: str) -> "ClientEvent":
        return cls(EventKind.FINGERPRINT_ANNOUNCED, fingerprint=normalize_fingerprint(fingerprint))

    @classmethod
    def confirmation_requested(cls) -> "ClientEvent":
        return cls(EventKind.CONFIRMATION_REQUESTED)

    @classmethod
    def session_ended(cls, exit_status: Optional[int]) -> "ClientEvent":
        return cls(EventKind.SESSION_ENDED, exit_status=exit_status)


def normalize_fingerprint(fingerprint: str) -> str:
    return fingerprint.strip().upper()


@dataclass(frozen=True)
class PromptRules:
    """Literal prompts of one client version, as compiled regexes.

    The fingerprint pattern must define a ``fingerprint`` group.
    """
    password: Pattern[str]
    fingerprint: Pattern[str]
    confirmation: Pattern[str]

    def patterns(self) -> list:
        """Ordered pattern list. Index order is the tie-break on equal match offsets."""
        return [self.password, self.fingerprint, self.confirmation]

    def event_for(self, index: int, match) -> ClientEvent:
        if index == 0:
            return ClientEvent.password_requested()
        if index == 1:
            return ClientEvent.fingerprint_announced(match.group("fingerprint"))
        if index == 2:
            return ClientEvent.confirmation_requested()
        raise IndexError(f"No prompt rule at index {index}")

    def classify(self, line: str) -> Optional[ClientEvent]:
        """Classify a single line of output. Unmatched lines return None."""
        if not line.endswith("\n"):
            line += "\n"
        for index, pattern in enumerate(self.patterns()):
            match = pattern.search(line)
            if match:
                return self.event_for(index, match)
        return None


# Exactly 20 octets. The trailing lookahead needs the next character to have
# arrived, so a token still streaming in is never cut short.
SHA1_FINGERPRINT = (
    r"(?<![0-9A-Fa-f:])"
    r"(?P<fingerprint>[0-9A-Fa-f]{2}(?::[0-9A-Fa-f]{2}){19})"
    r"(?=[^0-9A-Fa-f:])"
)

FORTIVPN_RULES = PromptRules(
    password=re.compile(r"[Pp]assword:"),
    fingerprint=re.compile(SHA1_FINGERPRINT),
    confirmation=re.compile(r"Confirm \([yY]/[nN]\)"),
)
