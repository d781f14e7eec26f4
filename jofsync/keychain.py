"""macOS keychain lookup for tracker credentials."""

import logging
import re
import subprocess

import httpx

from jofsync.errors import ConfigError

logger = logging.getLogger(__name__)

_ACCOUNT_RE = re.compile(r'^\s*"acct"<blob>="(?P<account>.*)"\s*$', re.MULTILINE)


def _security(*args: str) -> subprocess.CompletedProcess[str]:
    return subprocess.run(["security", *args], capture_output=True, text=True)


def lookup_credentials(hostname: str) -> tuple[str, str]:
    """Return (username, password) of the first internet password stored for hostname's host."""
    host = httpx.URL(hostname).host
    if not host:
        raise ConfigError(f"Cannot parse a host from '{hostname}' for the keychain lookup")

    hint = (
        "Password not found in keychain; add it using "
        f"'security add-internet-password -a <username> -s {host} -w <password>'"
    )
    logger.debug("looking up keychain entry for host %s", host)
    try:
        attrs = _security("find-internet-password", "-s", host)
        secret = _security("find-internet-password", "-s", host, "-w")
    except FileNotFoundError as exc:
        raise ConfigError(f"The 'security' tool is not available ({exc}). {hint}") from exc

    if attrs.returncode != 0 or secret.returncode != 0:
        raise ConfigError(hint)

    match = _ACCOUNT_RE.search(attrs.stdout)
    if not match or not match.group("account"):
        raise ConfigError(f"Keychain entry for {host} has no account name. {hint}")

    logger.debug("username and password loaded from keychain for %s", host)
    return match.group("account"), secret.stdout.rstrip("\n")
