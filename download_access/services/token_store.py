"""Durable state for download tokens and their audit trail.

Two operations carry the concurrency guarantees everything else relies on:

* ``increment_download_count`` is a single guarded UPDATE that only matches
  active tokens with quota left, so concurrent recorders can never push
  ``download_count`` past ``max_downloads``, count against a closed token, or
  count a single-use token twice.
* ``deactivate`` only matches rows that are still active, so the first
  deactivation wins and any later one is a successful no-op.

Database errors are re-raised as ``StoreUnavailable`` (reads) or
``PersistenceFailed`` (writes) so callers can tell "try again" apart from a
denial.
"""
import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, List, Optional, Type

from sqlalchemy import or_, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from download_access.core.clock import utcnow
from download_access.errors import PersistenceFailed, StoreUnavailable
from download_access.models.token import (
    DEACTIVATION_REASONS,
    TOKEN_STATUS_ACTIVE,
    TOKEN_STATUS_INACTIVE,
    DownloadActivity,
    DownloadToken,
)


logger = logging.getLogger(__name__)


class TokenStore:
    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def _guard(self, operation: str, error_cls: Type[StoreUnavailable] = StoreUnavailable) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Token store %s failed: %s", operation, exc)
            raise error_cls(f"Token store {operation} failed") from exc

    # Reads

    def get(self, token_id: str) -> Optional[DownloadToken]:
        with self._guard("lookup"):
            return (
                self.db.query(DownloadToken)
                .populate_existing()
                .filter(DownloadToken.id == token_id)
                .first()
            )

    def get_active_by_token(self, token_string: str) -> Optional[DownloadToken]:
        with self._guard("lookup"):
            return (
                self.db.query(DownloadToken)
                .populate_existing()
                .filter(DownloadToken.token == token_string, DownloadToken.status == TOKEN_STATUS_ACTIVE)
                .first()
            )

    def get_by_token(self, token_string: str) -> Optional[DownloadToken]:
        with self._guard("lookup"):
            return (
                self.db.query(DownloadToken)
                .populate_existing()
                .filter(DownloadToken.token == token_string)
                .first()
            )

    def expired_active_ids(self, now: Optional[datetime] = None) -> List[str]:
        now = now or utcnow()
        with self._guard("expiry scan"):
            rows = (
                self.db.query(DownloadToken.id)
                .filter(DownloadToken.status == TOKEN_STATUS_ACTIVE, DownloadToken.expires_at < now)
                .all()
            )
        return [row.id for row in rows]

    def list_tokens(
        self,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[DownloadToken]:
        with self._guard("listing"):
            query = self.db.query(DownloadToken)
            if user_id:
                query = query.filter(DownloadToken.user_id == user_id)
            if status:
                query = query.filter(DownloadToken.status == status)
            return query.order_by(DownloadToken.created_at.desc()).offset(offset).limit(limit).all()

    def list_activity(self, token_id: str) -> List[DownloadActivity]:
        with self._guard("activity listing"):
            return (
                self.db.query(DownloadActivity)
                .filter(DownloadActivity.token_id == token_id)
                .order_by(DownloadActivity.id.desc())
                .all()
            )

    # Writes

    def create(self, token: DownloadToken) -> DownloadToken:
        with self._guard("create", PersistenceFailed):
            self.db.add(token)
            self.db.commit()
            self.db.refresh(token)
        return token

    def increment_download_count(self, token_id: str) -> bool:
        """Add one download; False when the token is unknown, inactive, used up or a spent single-use token."""
        stmt = (
            update(DownloadToken)
            .where(
                DownloadToken.id == token_id,
                DownloadToken.status == TOKEN_STATUS_ACTIVE,
                DownloadToken.download_count < DownloadToken.max_downloads,
                or_(DownloadToken.single_use.is_(False), DownloadToken.download_count == 0),
            )
            .values(download_count=DownloadToken.download_count + 1)
            .execution_options(synchronize_session=False)
        )
        with self._guard("increment", PersistenceFailed):
            result = self.db.execute(stmt)
            self.db.commit()
        return result.rowcount == 1

    def deactivate(self, token_id: str, reason: str) -> bool:
        """Move an active token to inactive. Returns True only for the call that performed the transition."""
        if reason not in DEACTIVATION_REASONS:
            raise ValueError(f"Unknown deactivation reason: {reason}")
        stmt = (
            update(DownloadToken)
            .where(DownloadToken.id == token_id, DownloadToken.status == TOKEN_STATUS_ACTIVE)
            .values(status=TOKEN_STATUS_INACTIVE, deactivation_reason=reason, deactivated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        with self._guard("deactivate", PersistenceFailed):
            result = self.db.execute(stmt)
            self.db.commit()
        transitioned = result.rowcount == 1
        if transitioned:
            logger.info("Deactivated download token %s (%s)", token_id, reason)
        return transitioned

    def replace_secret(self, token_id: str, new_token: str, reason: str) -> bool:
        stmt = (
            update(DownloadToken)
            .where(DownloadToken.id == token_id)
            .values(token=new_token, regenerated_at=utcnow(), regeneration_reason=reason)
            .execution_options(synchronize_session=False)
        )
        with self._guard("regenerate", PersistenceFailed):
            result = self.db.execute(stmt)
            self.db.commit()
        return result.rowcount == 1

    def add_activity(
        self,
        token_id: str,
        file_key: str,
        downloaded_at: datetime,
        user_ip: str,
        user_agent: str,
        file_size: int,
        success: bool,
        content_type: Optional[str] = None,
        error: Optional[str] = None,
    ) -> DownloadActivity:
        activity = DownloadActivity(
            token_id=token_id,
            file_key=file_key,
            downloaded_at=downloaded_at,
            user_ip=user_ip,
            user_agent=user_agent,
            file_size=file_size,
            content_type=content_type,
            success=success,
            error=error,
        )
        with self._guard("activity append", PersistenceFailed):
            self.db.add(activity)
            self.db.commit()
        return activity
