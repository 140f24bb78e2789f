from typing import List, Literal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from download_access.db.session import get_db
from download_access.schemas.download import DownloadActivityOut, DownloadStats
from download_access.security.deps import get_current_user
from download_access.services.stats import user_download_history, user_download_stats


router = APIRouter()


@router.get("/me/downloads", response_model=List[DownloadActivityOut])
def my_downloads(
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
    limit: int = 50,
    offset: int = 0,
) -> List[DownloadActivityOut]:
    return user_download_history(db, user.id, limit=limit, offset=offset)


@router.get("/me/downloads/stats", response_model=DownloadStats)
def my_download_stats(
    timeframe: Literal["day", "week", "month", "all"] = "month",
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
) -> DownloadStats:
    return user_download_stats(db, user.id, timeframe=timeframe)
