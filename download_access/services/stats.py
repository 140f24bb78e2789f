from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from download_access.core.clock import utcnow
from download_access.models.token import DownloadActivity, DownloadToken
from download_access.schemas.download import DownloadStats, ProductDownloadStats


TIMEFRAME_DAYS = {"day": 1, "week": 7, "month": 30}


def _successful_downloads(db: Session, user_id: str, since: Optional[datetime]):
    query = (
        db.query(DownloadActivity, DownloadToken.product_id)
        .join(DownloadToken, DownloadToken.id == DownloadActivity.token_id)
        .filter(DownloadToken.user_id == user_id, DownloadActivity.success.is_(True))
    )
    if since is not None:
        query = query.filter(DownloadActivity.downloaded_at > since)
    return query


def user_download_history(db: Session, user_id: str, limit: int = 50, offset: int = 0) -> List[DownloadActivity]:
    return (
        db.query(DownloadActivity)
        .join(DownloadToken, DownloadToken.id == DownloadActivity.token_id)
        .filter(DownloadToken.user_id == user_id)
        .order_by(DownloadActivity.downloaded_at.desc(), DownloadActivity.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def user_download_stats(
    db: Session, user_id: str, timeframe: str = "month", clock: Callable[[], datetime] = utcnow
) -> DownloadStats:
    if timeframe != "all" and timeframe not in TIMEFRAME_DAYS:
        raise ValueError(f"Unknown timeframe: {timeframe}")
    since = None if timeframe == "all" else clock() - timedelta(days=TIMEFRAME_DAYS[timeframe])

    per_product: Dict[str, ProductDownloadStats] = {}
    total_downloads = 0
    data_transferred = 0
    for activity, product_id in _successful_downloads(db, user_id, since).all():
        total_downloads += 1
        data_transferred += activity.file_size or 0
        entry = per_product.setdefault(product_id, ProductDownloadStats(product_id=product_id))
        entry.downloads += 1
        entry.data_transferred += activity.file_size or 0

    top_products = sorted(per_product.values(), key=lambda p: p.downloads, reverse=True)[:10]
    return DownloadStats(
        timeframe=timeframe,
        total_downloads=total_downloads,
        unique_products=len(per_product),
        data_transferred=data_transferred,
        top_products=top_products,
    )
