"""Utility functions for VPN session management."""

import socket
import subprocess
from typing import Callable, Optional, Tuple
import time

from .exceptions import ExternalToolError, VPNTimeoutError
from ..logging_utility import logger

REDACTED = "********"


def run_command(cmd: list[str], check: bool = True,
                timeout: Optional[float] = None) -> Tuple[str, str, int]:
    """
    Run command and return its output.

    Args:
        cmd: Command as list of strings
        check: Whether to raise exception on error
        timeout: Seconds before the command is treated as hung

    Returns:
        Tuple of (stdout, stderr, returncode)
    """
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=check, timeout=timeout)
        return result.stdout, result.stderr, result.returncode
    except FileNotFoundError:
        raise ExternalToolError(f"Command not found: {cmd[0]}")
    except subprocess.TimeoutExpired:
        raise VPNTimeoutError(f"Command timed out after {timeout}s: {' '.join(cmd)}")
    except subprocess.CalledProcessError as e:
        raise ExternalToolError(f"Command failed: {' '.join(cmd)}\n{e.stderr or e.stdout}")


def port_is_open(port: int, host: str = "127.0.0.1", timeout: float = 0.5) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def wait_for_port(port: int, host: str = "127.0.0.1", max_attempts: int = 10,
                  delay: float = 0.5, alive: Optional[Callable[[], bool]] = None) -> bool:
    """
    Wait for a local TCP port to accept connections.

    Args:
        port: Port number
        host: Address to connect to
        max_attempts: Maximum number of attempts
        delay: Seconds between attempts
        alive: Checked before every attempt; waiting stops once it returns False

    Returns:
        bool: True if the port is accepting connections
    """
    logger.info(f"Waiting for {host}:{port} to be ready...")
    for i in range(max_attempts):
        if alive is not None and not alive():
            logger.warning(f"Listener for {host}:{port} exited while waiting")
            return False
        if port_is_open(port, host, timeout=delay):
            logger.info(f"{host}:{port} is accepting connections")
            return True
        time.sleep(delay)
        logger.debug(f"Waiting for {host}:{port}... ({i + 1}/{max_attempts})")
    return False


def redact(text: str, secret: Optional[str]) -> str:
    """Replace every occurrence of secret in text."""
    if not secret:
        return text
    return text.replace(secret, REDACTED)


def log_client_output(output: str, secret: Optional[str] = None) -> None:
    """
    Log VPN client console output.

    Args:
        output: Raw console transcript
        secret: Value that must never reach the log
    """
    if output.strip():
        logger.error(f"VPN client output:\n{redact(output, secret)}")
