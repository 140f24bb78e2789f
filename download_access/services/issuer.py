import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from download_access.core.clock import utcnow
from download_access.errors import TokenNotFound
from download_access.models.token import TOKEN_STATUS_ACTIVE, DownloadToken
from download_access.services.codec import TokenCodec
from download_access.services.token_store import TokenStore


logger = logging.getLogger(__name__)


@dataclass
class IssueOptions:
    max_downloads: Optional[int] = None
    expires_in_hours: Optional[float] = None
    user_ip: Optional[str] = None
    user_agent: Optional[str] = None
    order_number: Optional[str] = None
    product_title: Optional[str] = None
    ip_validation: bool = True
    user_agent_validation: bool = True
    single_use: bool = False


class TokenIssuer:
    """Mints download tokens for downloads the entitlement check already approved."""

    def __init__(
        self,
        store: TokenStore,
        codec: TokenCodec,
        default_max_downloads: int,
        default_expires_hours: float,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.codec = codec
        self.default_max_downloads = default_max_downloads
        self.default_expires_hours = default_expires_hours
        self.clock = clock

    def issue(
        self,
        user_id: str,
        order_id: str,
        product_id: str,
        file_keys: Sequence[str],
        options: Optional[IssueOptions] = None,
        authorized_file_keys: Optional[Sequence[str]] = None,
    ) -> DownloadToken:
        """Persist a new active token.

        Raises ``ValueError`` for bad input before anything is written and
        ``PersistenceFailed`` when the store rejects the write.
        """
        options = options or IssueOptions()
        scope = self._validate_scope(file_keys, authorized_file_keys)

        max_downloads = options.max_downloads if options.max_downloads is not None else self.default_max_downloads
        if max_downloads < 1:
            raise ValueError("max_downloads must be at least 1")
        expires_in_hours = (
            options.expires_in_hours if options.expires_in_hours is not None else self.default_expires_hours
        )
        if expires_in_hours <= 0:
            raise ValueError("expires_in_hours must be positive")

        now = self.clock()
        token_id = self.codec.new_token_id()
        token = DownloadToken(
            id=token_id,
            token=self.codec.generate(user_id, product_id, token_id),
            user_id=user_id,
            order_id=order_id,
            product_id=product_id,
            file_keys=scope,
            max_downloads=max_downloads,
            download_count=0,
            created_at=now,
            expires_at=now + timedelta(hours=expires_in_hours),
            ip_validation=options.ip_validation,
            user_agent_validation=options.user_agent_validation,
            single_use=options.single_use,
            status=TOKEN_STATUS_ACTIVE,
            user_ip=options.user_ip,
            user_agent=options.user_agent,
            order_number=options.order_number,
            product_title=options.product_title,
        )
        self.store.create(token)
        logger.info("Issued download token %s for user %s product %s", token_id, user_id, product_id)
        return token

    def regenerate(self, token_id: str, reason: str = "security_regeneration") -> str:
        """Swap the secret string of a token; quota, scope and expiry are left alone."""
        existing = self.store.get(token_id)
        if existing is None:
            raise TokenNotFound(token_id)
        new_token = self.codec.generate(existing.user_id, existing.product_id, token_id)
        if not self.store.replace_secret(token_id, new_token, reason):
            raise TokenNotFound(token_id)
        logger.info("Regenerated download token %s (%s)", token_id, reason)
        return new_token

    @staticmethod
    def _validate_scope(file_keys: Sequence[str], authorized_file_keys: Optional[Sequence[str]]) -> List[str]:
        scope: List[str] = list(dict.fromkeys(file_keys or []))
        if not scope or any(not key for key in scope):
            raise ValueError("file_keys must be a non-empty list of storage keys")
        if authorized_file_keys is not None:
            unauthorized = [key for key in scope if key not in set(authorized_file_keys)]
            if unauthorized:
                raise ValueError(f"file_keys outside the authorized scope: {unauthorized}")
        return scope
