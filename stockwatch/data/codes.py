"""
Instrument code normalisation and name lookup.
"""

import logging
from typing import Optional

import requests

logger = logging.getLogger(__name__)

EXCHANGE_PREFIXES = ("sz", "sh")
DEFAULT_PREFIX = "sz"


def normalize_code(code: str) -> str:
    """
    Ensure a code carries an exchange prefix.

    Codes without ``sz``/``sh`` get the Shenzhen prefix. Applying this to an
    already prefixed code returns it unchanged.

    Args:
        code: Raw code, e.g. "159509" or "sz159509"

    Returns:
        Prefixed code, e.g. "sz159509"
    """
    code = code.strip()
    if code[:2].lower() in EXCHANGE_PREFIXES:
        return code[:2].lower() + code[2:]
    return f"{DEFAULT_PREFIX}{code}"


def exchange_of(code: str) -> str:
    """Return the exchange prefix of a code."""
    return normalize_code(code)[:2]


def to_yahoo_symbol(code: str) -> str:
    """Map a prefixed code to its Yahoo Finance symbol."""
    suffix = ".SS" if exchange_of(code) == "sh" else ".SZ"
    return f"{normalize_code(code)[2:]}{suffix}"


def to_eastmoney_secid(code: str) -> str:
    """Map a prefixed code to an Eastmoney ``secid``."""
    market = "1" if exchange_of(code) == "sh" else "0"
    return f"{market}.{normalize_code(code)[2:]}"


class SymbolResolver:
    """Looks up instrument names from Eastmoney."""

    EASTMONEY_URL = "https://push2.eastmoney.com/api/qt/stock/get"

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    def lookup_name(self, code: str) -> Optional[str]:
        """
        Fetch the display name for a code.

        Args:
            code: Instrument code, with or without prefix

        Returns:
            Name, or None if the lookup failed
        """
        params = {"secid": to_eastmoney_secid(code), "fields": "f58"}
        try:
            response = requests.get(self.EASTMONEY_URL, params=params, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Name lookup failed for {code}: {e}")
            return None

        data = payload.get("data") if isinstance(payload, dict) else None
        if not data or not data.get("f58"):
            return None
        return str(data["f58"])
