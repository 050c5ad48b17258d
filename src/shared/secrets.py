"""
Secrets and keychain integration: retrieves the API token from the
system keychain when it is not supplied through the environment.

Uses ``secret-tool`` (libsecret) under the hood and falls back to a
``DM_ARCHIVER_<KEY_NAME>`` environment variable in development setups
where no keychain is available.
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger("shared.secrets")


def get_secret(key_name: str, service: str = "dm-archiver") -> str:
    """Retrieve a secret from the system keychain.

    Looks the value up with::

        secret-tool lookup service dm-archiver key <key_name>

    Falls back to the environment variable ``DM_ARCHIVER_<KEY_NAME>`` if
    ``secret-tool`` is missing or returns nothing.

    Args:
        key_name: The key identifier (e.g. ``"token"``).
        service: The service label in the keychain.

    Returns:
        The secret value as a string.

    Raises:
        RuntimeError: If the secret is not found in the keychain or env.
    """
    try:
        result = subprocess.run(
            ["secret-tool", "lookup", "service", service, "key", key_name],
            capture_output=True,
            text=True,
            timeout=10,
        )
        secret = result.stdout.strip()
        if secret:
            return secret
    except FileNotFoundError:
        logger.debug("secret-tool not found; falling back to environment variable")
    except subprocess.TimeoutExpired:
        logger.warning("secret-tool timed out; falling back to environment variable")
    except OSError:
        logger.warning(
            "secret-tool failed; falling back to environment variable",
            exc_info=True,
        )

    env_key = f"DM_ARCHIVER_{key_name.upper().replace('-', '_')}"
    env_val = os.environ.get(env_key)
    if env_val:
        logger.warning("Using env var fallback for secret '%s' (%s)", key_name, env_key)
        return env_val

    raise RuntimeError(
        f"Secret '{key_name}' not found in keychain (service={service}) "
        f"or environment variable {env_key}"
    )
