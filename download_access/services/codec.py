import hashlib
import hmac
import re
import secrets
import time
import uuid
from typing import Tuple


_BROWSER_RE = re.compile(r"(Chrome|Firefox|Safari|Edge|Opera)/?([\d.]+)", re.IGNORECASE)
_OS_RE = re.compile(r"(Windows|Mac OS X|Linux|Android|iOS)", re.IGNORECASE)

BROWSER_WEIGHT = 0.6
OS_WEIGHT = 0.4


def _user_agent_components(user_agent: str) -> Tuple[str, str]:
    browser_match = _BROWSER_RE.search(user_agent or "")
    os_match = _OS_RE.search(user_agent or "")
    browser = ""
    if browser_match:
        browser = f"{browser_match.group(1)}/{browser_match.group(2).split('.')[0]}"
    return browser, os_match.group(1) if os_match else ""


class TokenCodec:
    """Mints opaque download token strings and compares device fingerprints.

    The secret is injected so it can be rotated and pinned in tests. Token
    strings have the shape ``dl_<millis>_<32 hex>``; the hex part is an
    HMAC-SHA256 over the scope, the token id, the current time and fresh
    random bytes, so it reveals nothing about its inputs.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("TokenCodec requires a non-empty secret")
        self._secret = secret.encode()

    @staticmethod
    def new_token_id() -> str:
        return str(uuid.uuid4())

    def generate(self, user_id: str, product_id: str, token_id: str) -> str:
        timestamp = str(int(time.time() * 1000))
        nonce = secrets.token_hex(16)
        message = f"{user_id}:{product_id}:{token_id}:{timestamp}:{nonce}".encode()
        digest = hmac.new(self._secret, message, hashlib.sha256).hexdigest()
        return f"dl_{timestamp}_{digest[:32]}"

    @staticmethod
    def user_agent_similarity(original: str, current: str) -> float:
        """Score 0..1: 0.6 for same browser family and major version, 0.4 for same OS."""
        if original == current:
            return 1.0

        original_browser, original_os = _user_agent_components(original)
        current_browser, current_os = _user_agent_components(current)

        score = 0.0
        if original_browser and original_browser == current_browser:
            score += BROWSER_WEIGHT
        if original_os and original_os == current_os:
            score += OS_WEIGHT
        return round(score, 2)
