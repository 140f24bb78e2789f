import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from download_access.core.clock import utcnow
from download_access.errors import StoreUnavailable
from download_access.models.token import TOKEN_STATUS_ACTIVE
from download_access.services.token_store import TokenStore


logger = logging.getLogger(__name__)

RECORD_ERROR_NOT_FOUND = "Token not found"
RECORD_ERROR_INACTIVE = "Token is no longer active"
RECORD_ERROR_LIMIT = "Download limit reached"


@dataclass
class TransferDetails:
    user_ip: str
    user_agent: str
    file_size: int = 0
    content_type: Optional[str] = None
    downloaded_at: Optional[datetime] = None


@dataclass(frozen=True)
class RecordOutcome:
    success: bool
    download_count: Optional[int] = None
    deactivated: bool = False
    error: Optional[str] = None


class DownloadRecorder:
    """Counts a confirmed transfer against its token and appends the audit row.

    Call only after the transfer layer confirmed completion; an aborted
    transfer must leave the quota untouched.
    """

    def __init__(self, store: TokenStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def record(self, token_id: str, file_key: str, transfer: TransferDetails) -> RecordOutcome:
        downloaded_at = transfer.downloaded_at or self.clock()
        try:
            # Increment first and decide on the post-increment state; checking
            # the limit beforehand would let two concurrent calls both pass
            if not self.store.increment_download_count(token_id):
                return self._reject(token_id, file_key, transfer, downloaded_at)

            self.store.add_activity(
                token_id=token_id,
                file_key=file_key,
                downloaded_at=downloaded_at,
                user_ip=transfer.user_ip,
                user_agent=transfer.user_agent,
                file_size=transfer.file_size,
                content_type=transfer.content_type,
                success=True,
            )

            token = self.store.get(token_id)
            deactivated = False
            if token.single_use or token.download_count >= token.max_downloads:
                deactivated = self.store.deactivate(token_id, "download_completed")
            return RecordOutcome(success=True, download_count=token.download_count, deactivated=deactivated)
        except StoreUnavailable as exc:
            self.record_failure(token_id, file_key, transfer, str(exc), downloaded_at)
            raise

    def record_failure(
        self,
        token_id: str,
        file_key: str,
        transfer: TransferDetails,
        error: str,
        downloaded_at: Optional[datetime] = None,
    ) -> None:
        """Append a failed-transfer row. Never raises; losing this row is only logged."""
        try:
            self.store.add_activity(
                token_id=token_id,
                file_key=file_key,
                downloaded_at=downloaded_at or transfer.downloaded_at or self.clock(),
                user_ip=transfer.user_ip,
                user_agent=transfer.user_agent,
                file_size=0,
                content_type=transfer.content_type,
                success=False,
                error=error,
            )
        except StoreUnavailable:
            logger.error("Failed to record download failure for token %s", token_id, exc_info=True)

    def _reject(
        self, token_id: str, file_key: str, transfer: TransferDetails, downloaded_at: datetime
    ) -> RecordOutcome:
        """The guarded increment matched nothing: explain why and audit the attempt."""
        token = self.store.get(token_id)
        if token is None:
            logger.warning("Download recorded against unknown token %s", token_id)
            return RecordOutcome(success=False, error=RECORD_ERROR_NOT_FOUND)

        deactivated = False
        if token.status != TOKEN_STATUS_ACTIVE:
            error = RECORD_ERROR_INACTIVE
        else:
            # Active but out of quota, or a single-use token someone else just spent
            error = RECORD_ERROR_LIMIT
            deactivated = self.store.deactivate(token_id, "download_limit_reached")
        self.record_failure(token_id, file_key, transfer, error, downloaded_at)
        return RecordOutcome(success=False, download_count=token.download_count, deactivated=deactivated, error=error)
