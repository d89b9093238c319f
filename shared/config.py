"""
Client configuration.

Settings come from the environment (optionally a .env file). The API base
URL depends on where the client runs: the iOS simulator and web builds reach
the development server on loopback, the Android emulator through its special
NAT address, and physical devices through the machine's LAN IP.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from shared.constants import (
    ANDROID_EMULATOR_HOST,
    DEFAULT_API_PORT,
    DEFAULT_CONFIG_DIR,
    DEFAULT_LAN_IP,
    DEFAULT_NETWORK_TIMEOUT,
    PRODUCTION_API_URL,
)

load_dotenv()

API_URL = os.getenv("SOUNDSPOTS_API_URL")
ENVIRONMENT = os.getenv("SOUNDSPOTS_ENV", "development")
PLATFORM = os.getenv("SOUNDSPOTS_PLATFORM", "web")
LAN_IP = os.getenv("SOUNDSPOTS_LAN_IP", DEFAULT_LAN_IP)
CONFIG_DIR = Path(os.getenv("SOUNDSPOTS_CONFIG_DIR", DEFAULT_CONFIG_DIR)).expanduser()


def _read_timeout() -> float:
    raw = os.getenv("SOUNDSPOTS_API_TIMEOUT")
    if not raw:
        return float(DEFAULT_NETWORK_TIMEOUT)
    try:
        return float(raw)
    except ValueError:
        return float(DEFAULT_NETWORK_TIMEOUT)


API_TIMEOUT = _read_timeout()


def resolve_base_url(
    platform: Optional[str] = None,
    environment: Optional[str] = None,
    explicit_url: Optional[str] = None,
    lan_ip: Optional[str] = None,
) -> str:
    """
    Work out the API base URL.

    Args:
        platform: ios, android, android-emulator, device or web
        environment: development or production
        explicit_url: URL that overrides every other rule
        lan_ip: LAN address of the development machine

    Returns:
        Base URL without a trailing slash
    """
    url = explicit_url if explicit_url is not None else API_URL
    if url:
        return url.rstrip("/")

    env = environment or ENVIRONMENT
    if env == "production":
        return PRODUCTION_API_URL

    target = (platform or PLATFORM).lower()
    if target == "android-emulator":
        host = ANDROID_EMULATOR_HOST
    elif target in ("android", "device"):
        host = lan_ip or LAN_IP
    else:
        # iOS simulator and web share the host's loopback
        host = "localhost"
    return f"http://{host}:{DEFAULT_API_PORT}"


def describe() -> dict:
    """Snapshot of the active configuration for diagnostics."""
    return {
        "base_url": resolve_base_url(),
        "environment": ENVIRONMENT,
        "platform": PLATFORM,
        "timeout": API_TIMEOUT,
        "config_dir": str(CONFIG_DIR),
    }
