from functools import lru_cache

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from download_access.core.settings import settings
from download_access.db.session import get_db
from download_access.services.catalog import SqlCatalog
from download_access.services.classifier import ExistenceCache, RequestClassifier
from download_access.services.codec import TokenCodec
from download_access.services.downloads import DownloadAccessService
from download_access.services.entitlements import SqlEntitlementOracle
from download_access.services.issuer import TokenIssuer
from download_access.services.janitor import Janitor
from download_access.services.recorder import DownloadRecorder
from download_access.services.token_store import TokenStore
from download_access.services.validator import TokenValidator


_CLIENT_IP_HEADERS = ("x-forwarded-for", "cf-connecting-ip", "x-real-ip", "x-client-ip")

# Per-process and advisory; instances may disagree, correctness never depends on it
existence_cache = ExistenceCache(ttl_seconds=settings.existence_cache_ttl_seconds)


@lru_cache
def get_codec() -> TokenCodec:
    return TokenCodec(settings.download_token_secret)


def get_token_store(db: Session = Depends(get_db)) -> TokenStore:
    return TokenStore(db)


def get_issuer(store: TokenStore = Depends(get_token_store), codec: TokenCodec = Depends(get_codec)) -> TokenIssuer:
    return TokenIssuer(
        store,
        codec,
        default_max_downloads=settings.max_downloads_per_token,
        default_expires_hours=settings.download_token_expires_hours,
    )


def get_validator(store: TokenStore = Depends(get_token_store)) -> TokenValidator:
    return TokenValidator(store, similarity_threshold=settings.user_agent_similarity_threshold)


def get_recorder(store: TokenStore = Depends(get_token_store)) -> DownloadRecorder:
    return DownloadRecorder(store)


def get_janitor(store: TokenStore = Depends(get_token_store)) -> Janitor:
    return Janitor(store)


def get_download_service(
    db: Session = Depends(get_db),
    issuer: TokenIssuer = Depends(get_issuer),
) -> DownloadAccessService:
    catalog = SqlCatalog(db)
    return DownloadAccessService(
        classifier=RequestClassifier(catalog, cache=existence_cache),
        oracle=SqlEntitlementOracle(db),
        catalog=catalog,
        issuer=issuer,
    )


def get_client_ip(request: Request) -> str:
    # Forwarding headers are caller-controlled unless a proxy we run sets them
    if settings.trust_proxy_headers:
        for header in _CLIENT_IP_HEADERS:
            value = request.headers.get(header)
            if value:
                return value.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("user-agent") or "unknown"
