"""Fasten Connect credentials: keychain storage and format checks.

The keychain (macOS Keychain, Secret Service, Windows Credential Locker) is
reached through ``keyring``, imported lazily so hosts without a keychain
backend fall back to environment variables.

Fasten issues paired keys per mode: ``public_test_`` / ``private_test_`` in
the sandbox and ``public_live_`` / ``private_live_`` in production. A public
id from one mode never works with a private key from the other.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

SERVICE_NAME = "clearcare-health"

CREDENTIAL_KEYS: frozenset[str] = frozenset(
    {
        "FASTEN_PUBLIC_ID",
        "FASTEN_PRIVATE_KEY",
        "FASTEN_WEBHOOK_SECRET",
    }
)

KEY_PREFIXES: dict[str, str] = {
    "FASTEN_PUBLIC_ID": "public_",
    "FASTEN_PRIVATE_KEY": "private_",
}

KEY_MODES = ("test", "live")


def key_mode(key: str, value: str) -> Optional[str]:
    """Return ``"test"`` or ``"live"`` for a Fasten key, else None."""
    prefix = KEY_PREFIXES.get(key)
    if prefix is None:
        return None
    for mode in KEY_MODES:
        if value.startswith(f"{prefix}{mode}_") and len(value) > len(prefix) + len(mode) + 1:
            return mode
    return None


def credential_problems(credentials: dict[str, str]) -> list[str]:
    """Check a set of Fasten credentials before they are stored.

    Returns:
        Human-readable problems; empty when the credentials look usable.
    """
    problems = []
    for key, value in credentials.items():
        if key not in CREDENTIAL_KEYS:
            problems.append(f"{key} is not a Fasten credential")
        elif not value or value != value.strip() or any(c.isspace() for c in value):
            problems.append(f"{key} must be a single token without whitespace")
        elif key in KEY_PREFIXES and key_mode(key, value) is None:
            prefix = KEY_PREFIXES[key]
            problems.append(f"{key} should start with {prefix}test_ or {prefix}live_")

    public_id = credentials.get("FASTEN_PUBLIC_ID")
    private_key = credentials.get("FASTEN_PRIVATE_KEY")
    if public_id and private_key:
        public_mode = key_mode("FASTEN_PUBLIC_ID", public_id)
        private_mode = key_mode("FASTEN_PRIVATE_KEY", private_key)
        if public_mode and private_mode and public_mode != private_mode:
            problems.append(
                f"FASTEN_PUBLIC_ID is a {public_mode} key but FASTEN_PRIVATE_KEY is a {private_mode} key"
            )
    return problems


def mask_credential(key: str, value: str, visible: int = 4) -> str:
    """Mask a secret for display, keeping any Fasten mode prefix readable.

    ``private_test_9f8e7d6c`` -> ``private_test_****7d6c``
    """
    mode = key_mode(key, value)
    prefix = f"{KEY_PREFIXES[key]}{mode}_" if mode else ""
    secret = value[len(prefix):]
    if len(secret) <= visible * 2:
        return prefix + "*" * len(secret)
    return prefix + "*" * 4 + secret[-visible:]


def get_credential(key: str) -> str | None:
    """Retrieve a credential from the keychain.

    Returns:
        The credential value, or ``None`` if not found or keyring
        is unavailable.
    """
    try:
        import keyring
    except ImportError:
        return None

    try:
        return keyring.get_password(SERVICE_NAME, key)
    except Exception:
        logger.debug("keyring lookup failed for %s", key, exc_info=True)
        return None


def set_credential(key: str, value: str) -> bool:
    """Store one Fasten credential in the keychain.

    The value is stripped and must pass :func:`credential_problems`.

    Returns:
        ``True`` if stored successfully, ``False`` otherwise.
    """
    value = (value or "").strip()
    problems = credential_problems({key: value})
    if problems:
        logger.warning("Refusing to store %s: %s", key, "; ".join(problems))
        return False

    try:
        import keyring
    except ImportError:
        logger.warning("keyring is not installed; cannot store credentials")
        return False

    try:
        keyring.set_password(SERVICE_NAME, key, value)
        logger.info("Stored %s in keychain", key)
        return True
    except Exception:
        logger.warning("Failed to store %s in keychain", key, exc_info=True)
        return False
