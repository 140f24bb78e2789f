"""Janitor: deactivates download tokens whose expiry has passed.

Run standalone: python -m download_access.services.janitor
Also scheduled in-process by download_access.scheduler.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List

from download_access.core.clock import utcnow
from download_access.db.session import SessionLocal
from download_access.errors import StoreUnavailable
from download_access.services.token_store import TokenStore


logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    cleaned: int = 0
    errors: List[str] = field(default_factory=list)


class Janitor:
    def __init__(self, store: TokenStore, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def sweep_expired(self) -> SweepResult:
        """Deactivate every active token past its expiry.

        Safe to run repeatedly and next to request traffic: tokens that some
        other caller deactivated first are skipped and not counted.
        """
        result = SweepResult()
        try:
            token_ids = self.store.expired_active_ids(self.clock())
        except StoreUnavailable as exc:
            result.errors.append(f"Cleanup failed: {exc}")
            return result

        for token_id in token_ids:
            try:
                if self.store.deactivate(token_id, "expired"):
                    result.cleaned += 1
            except StoreUnavailable as exc:
                result.errors.append(f"Failed to deactivate token {token_id}: {exc}")

        if result.cleaned or result.errors:
            logger.info("Expired token sweep: %d cleaned, %d errors", result.cleaned, len(result.errors))
        return result


def run_sweep() -> SweepResult:
    """Sweep with a dedicated session; entry point for the scheduler and cron."""
    db = SessionLocal()
    try:
        return Janitor(TokenStore(db)).sweep_expired()
    finally:
        db.close()


if __name__ == "__main__":
    from download_access.core.logging import setup_logging

    setup_logging()
    outcome = run_sweep()
    for error in outcome.errors:
        logger.error(error)
    logger.info("Cleaned %d expired download tokens", outcome.cleaned)
