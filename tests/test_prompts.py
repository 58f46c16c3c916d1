"""Tests for the console prompt rules and the pexpect session."""

import re
import time

import pytest

from vmvpn.vpn.exceptions import VPNTimeoutError
from vmvpn.vpn.prompts import FORTIVPN_RULES, ClientEvent, EventKind, PromptRules
from vmvpn.vpn.session import ConsoleSession
from vmvpn.vpn.utils import REDACTED

from conftest import FINGERPRINT


class TestPromptRules:
    def test_password_prompt(self):
        assert FORTIVPN_RULES.classify("Password: ").kind is EventKind.PASSWORD_REQUESTED

    def test_fingerprint_line(self):
        event = FORTIVPN_RULES.classify(f"Certificate SHA1 fingerprint: {FINGERPRINT.lower()}")

        assert event.kind is EventKind.FINGERPRINT_ANNOUNCED
        assert event.fingerprint == FINGERPRINT

    def test_confirmation_prompt(self):
        event = FORTIVPN_RULES.classify("Confirm (y/n) [default=n]: ")

        assert event.kind is EventKind.CONFIRMATION_REQUESTED

    def test_unmatched_output_is_passthrough(self):
        assert FORTIVPN_RULES.classify("STATUS::Connecting to gateway") is None

    def test_short_hex_is_not_a_fingerprint(self):
        assert FORTIVPN_RULES.classify("MAC AA:BB:CC:DD:EE:FF") is None

    def test_longer_colon_hex_is_not_a_fingerprint(self):
        sha256 = ":".join(["AB"] * 32)

        assert FORTIVPN_RULES.classify(f"Certificate SHA256 fingerprint: {sha256}") is None

    def test_hex_prefix_is_not_a_fingerprint(self):
        assert FORTIVPN_RULES.classify(f"digest 0F:{FINGERPRINT}") is None
        assert FORTIVPN_RULES.classify(f"digest 0F{FINGERPRINT}") is None

    def test_fingerprint_needs_its_terminator(self):
        line = f"Certificate SHA1 fingerprint: {FINGERPRINT}"

        assert FORTIVPN_RULES.fingerprint.search(line) is None
        assert FORTIVPN_RULES.fingerprint.search(line + "\r\n").group("fingerprint") == FINGERPRINT

    def test_rules_can_be_swapped(self):
        rules = PromptRules(
            password=re.compile(r"Enter passphrase"),
            fingerprint=re.compile(r"pin-sha1=(?P<fingerprint>[0-9a-f:]+)"),
            confirmation=re.compile(r"Accept\?"),
        )

        assert rules.classify("Enter passphrase").kind is EventKind.PASSWORD_REQUESTED
        assert rules.classify("pin-sha1=ab:cd").fingerprint == "AB:CD"
        assert rules.classify("Password:") is None

    def test_session_ended_event(self):
        event = ClientEvent.session_ended(3)

        assert event.kind is EventKind.SESSION_ENDED
        assert event.exit_status == 3


CLIENT_SCRIPT = (
    'printf "Password: "; read pw; '
    'echo "login as $pw"; '
    f'echo "Certificate SHA1 fingerprint: {FINGERPRINT}"; '
    'printf "Confirm (y/n) [default=n]: "; read answer; '
    'if [ "$answer" = y ]; then echo "STATUS::Connected"; exit 0; fi; '
    'echo "STATUS::Aborted"; exit 3'
)


def _drive(answer):
    events = []
    with ConsoleSession(["sh", "-c", CLIENT_SCRIPT], FORTIVPN_RULES, timeout=10) as session:
        while True:
            event = session.next_event()
            events.append(event)
            if event.kind is EventKind.PASSWORD_REQUESTED:
                session.respond("s3cret-pass", secret=True)
            elif event.kind is EventKind.CONFIRMATION_REQUESTED:
                session.respond(answer)
            elif event.kind is EventKind.SESSION_ENDED:
                return events, session


class TestConsoleSession:
    def test_event_sequence_and_accept(self):
        events, session = _drive("y")

        assert [e.kind for e in events] == [
            EventKind.PASSWORD_REQUESTED,
            EventKind.FINGERPRINT_ANNOUNCED,
            EventKind.CONFIRMATION_REQUESTED,
            EventKind.SESSION_ENDED,
        ]
        assert events[1].fingerprint == FINGERPRINT
        assert events[-1].exit_status == 0
        assert "STATUS::Connected" in session.transcript

    def test_decline_exit_status(self):
        events, session = _drive("n")

        assert events[-1].exit_status == 3
        assert "STATUS::Aborted" in session.transcript

    def test_password_redacted_from_transcript(self):
        _, session = _drive("n")

        assert "s3cret-pass" not in session.transcript
        assert f"login as {REDACTED}" in session.transcript

    def test_timeout(self):
        with ConsoleSession(["sh", "-c", "sleep 5"], FORTIVPN_RULES, timeout=1) as session:
            with pytest.raises(VPNTimeoutError):
                session.next_event()

    def test_deadline_covers_whole_session(self):
        looping = (
            'printf "Password: "; read pw; '
            f'while true; do echo "Certificate SHA1 fingerprint: {FINGERPRINT}"; sleep 0.2; done'
        )
        started = time.monotonic()
        with ConsoleSession(["sh", "-c", looping], FORTIVPN_RULES, timeout=2) as session:
            with pytest.raises(VPNTimeoutError):
                while True:
                    event = session.next_event()
                    if event.kind is EventKind.PASSWORD_REQUESTED:
                        session.respond("s3cret-pass", secret=True)

        assert time.monotonic() - started < 6
