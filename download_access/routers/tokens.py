from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from download_access.dependencies import get_issuer, get_janitor, get_token_store
from download_access.errors import TokenNotFound
from download_access.models.user import User
from download_access.schemas.download import (
    CleanupResponse,
    DownloadActivityOut,
    TokenDeactivateRequest,
    TokenRecord,
    TokenRegenerateRequest,
    TokenRegenerateResponse,
)
from download_access.security.deps import require_admin
from download_access.services.issuer import TokenIssuer
from download_access.services.janitor import Janitor
from download_access.services.token_store import TokenStore


router = APIRouter()


def _get_token_or_404(store: TokenStore, token_id: str):
    token = store.get(token_id)
    if token is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Download token not found")
    return token


@router.get("/", response_model=List[TokenRecord])
def list_tokens(
    _: User = Depends(require_admin),
    store: TokenStore = Depends(get_token_store),
    user_id: Optional[str] = None,
    token_status: Optional[Literal["active", "inactive"]] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[TokenRecord]:
    return store.list_tokens(user_id=user_id, status=token_status, limit=limit, offset=offset)


@router.get("/{token_id}", response_model=TokenRecord)
def get_token(
    token_id: str,
    _: User = Depends(require_admin),
    store: TokenStore = Depends(get_token_store),
) -> TokenRecord:
    return _get_token_or_404(store, token_id)


@router.post("/cleanup", response_model=CleanupResponse)
def cleanup_expired_tokens(
    _: User = Depends(require_admin),
    janitor: Janitor = Depends(get_janitor),
) -> CleanupResponse:
    result = janitor.sweep_expired()
    return CleanupResponse(cleaned=result.cleaned, errors=result.errors)


@router.post("/{token_id}/deactivate", response_model=TokenRecord)
def deactivate_token(
    token_id: str,
    payload: TokenDeactivateRequest,
    _: User = Depends(require_admin),
    store: TokenStore = Depends(get_token_store),
) -> TokenRecord:
    _get_token_or_404(store, token_id)
    # Already inactive tokens keep their original reason
    store.deactivate(token_id, payload.reason)
    return _get_token_or_404(store, token_id)


@router.post("/{token_id}/regenerate", response_model=TokenRegenerateResponse)
def regenerate_token(
    token_id: str,
    payload: TokenRegenerateRequest,
    _: User = Depends(require_admin),
    issuer: TokenIssuer = Depends(get_issuer),
) -> TokenRegenerateResponse:
    try:
        new_token = issuer.regenerate(token_id, payload.reason)
    except TokenNotFound:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Download token not found")
    return TokenRegenerateResponse(token_id=token_id, token=new_token)


@router.get("/{token_id}/activity", response_model=List[DownloadActivityOut])
def token_activity(
    token_id: str,
    _: User = Depends(require_admin),
    store: TokenStore = Depends(get_token_store),
) -> List[DownloadActivityOut]:
    _get_token_or_404(store, token_id)
    return store.list_activity(token_id)
