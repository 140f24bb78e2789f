import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Union

from download_access.core.clock import to_aware_utc, utcnow
from download_access.models.token import DownloadToken
from download_access.services.codec import TokenCodec
from download_access.services.denials import Denial, DenialCode
from download_access.services.token_store import TokenStore


logger = logging.getLogger(__name__)

_CLOSED_REASON_CODES = {
    "expired": DenialCode.EXPIRED,
    "download_limit_reached": DenialCode.LIMIT_REACHED,
    "download_completed": DenialCode.LIMIT_REACHED,
}


@dataclass(frozen=True)
class ValidatedToken:
    token: DownloadToken
    remaining_downloads: int


class TokenValidator:
    """Checks a presented token string against its stored state and request context.

    Gates run in order and the first failure decides the denial. Expiry and
    exhausted quota close the token for good; IP and device mismatches only
    deny the current request, since NAT changes and browser updates are
    expected false positives.
    """

    def __init__(
        self,
        store: TokenStore,
        similarity_threshold: float = 0.8,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.similarity_threshold = similarity_threshold
        self.clock = clock

    def validate(self, token_string: str, request_ip: str, request_user_agent: str) -> Union[ValidatedToken, Denial]:
        token = self.store.get_active_by_token(token_string) if token_string else None
        if token is None:
            return self._deny(self._closed_token_code(token_string), None)

        if self.clock() > to_aware_utc(token.expires_at):
            self.store.deactivate(token.id, "expired")
            return self._deny(DenialCode.EXPIRED, token)

        if token.download_count >= token.max_downloads:
            self.store.deactivate(token.id, "download_limit_reached")
            return self._deny(DenialCode.LIMIT_REACHED, token)

        if token.ip_validation and token.user_ip and token.user_ip != request_ip:
            return self._deny(DenialCode.IP_MISMATCH, token)

        if token.user_agent_validation and token.user_agent:
            similarity = TokenCodec.user_agent_similarity(token.user_agent, request_user_agent or "")
            if similarity < self.similarity_threshold:
                return self._deny(DenialCode.DEVICE_MISMATCH, token)

        return ValidatedToken(token=token, remaining_downloads=token.max_downloads - token.download_count)

    def _closed_token_code(self, token_string: str) -> DenialCode:
        """A closed token keeps reporting why it closed; anything else is simply not found.

        Only the holder of the exact secret string can observe this, so it
        reveals nothing to someone guessing ids.
        """
        if not token_string:
            return DenialCode.NOT_FOUND_OR_INACTIVE
        closed = self.store.get_by_token(token_string)
        if closed is None:
            return DenialCode.NOT_FOUND_OR_INACTIVE
        return _CLOSED_REASON_CODES.get(closed.deactivation_reason, DenialCode.NOT_FOUND_OR_INACTIVE)

    @staticmethod
    def _deny(code: DenialCode, token) -> Denial:
        logger.info("Download token denied: %s (token id %s)", code.value, token.id if token is not None else "-")
        return Denial.of(code)
