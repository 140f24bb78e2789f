from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from download_access.core.settings import settings
from download_access.dependencies import (
    get_client_ip,
    get_download_service,
    get_recorder,
    get_user_agent,
    get_validator,
)
from download_access.models.token import TOKEN_STATUS_ACTIVE, DownloadToken
from download_access.models.user import User
from download_access.schemas.download import (
    ClassificationOut,
    IssuedTokenResponse,
    SecureDownloadResponse,
    TransferCompleteRequest,
    TransferCompleteResponse,
)
from download_access.security.deps import get_current_user
from download_access.services.classifier import Classification
from download_access.services.denials import Denial
from download_access.services.downloads import (
    REFUSAL_INVALID_IDENTIFIER,
    REFUSAL_NO_FILES,
    REFUSAL_PRODUCT_NOT_FOUND,
    DownloadAccessService,
    DownloadRefusal,
)
from download_access.services.recorder import (
    RECORD_ERROR_INACTIVE,
    RECORD_ERROR_NOT_FOUND,
    DownloadRecorder,
    TransferDetails,
)
from download_access.services.validator import TokenValidator


router = APIRouter()

_REFUSAL_STATUS = {
    REFUSAL_INVALID_IDENTIFIER: status.HTTP_400_BAD_REQUEST,
    REFUSAL_PRODUCT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    REFUSAL_NO_FILES: status.HTTP_404_NOT_FOUND,
}

_RECORD_ERROR_CODES = {
    RECORD_ERROR_NOT_FOUND: "token_not_found",
    RECORD_ERROR_INACTIVE: "token_inactive",
}

SUPPORTED_FORMATS_HINT = (
    "Supported formats: license IDs, product IDs, ap_[productId], access_pass_[productId], asset_[id]"
)


def _classification_out(classification: Classification) -> ClassificationOut:
    return ClassificationOut(
        kind=classification.kind.value,
        confidence=classification.confidence,
        suggestion=classification.suggestion,
        product_id=classification.product_id,
    )


def _denial_exception(denial: Denial) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"code": denial.code.value, "message": denial.message},
    )


def _file_name(file_key: str) -> str:
    return file_key.rsplit("/", 1)[-1] or "download"


def _resolve_file(token: DownloadToken, file_key: Optional[str]) -> str:
    """Pick the file a request targets and make sure the token covers it."""
    if file_key:
        if file_key not in token.file_keys:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "file_not_authorized", "message": "File not authorized for this token"},
            )
        return file_key
    if len(token.file_keys) == 1:
        return token.file_keys[0]
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={
            "code": "file_selection_required",
            "message": "Multiple files available - specify file parameter",
            "available_files": list(token.file_keys),
        },
    )


@router.get("/smart/{identifier}", response_model=IssuedTokenResponse)
def smart_download(
    identifier: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    service: DownloadAccessService = Depends(get_download_service),
    client_ip: str = Depends(get_client_ip),
    user_agent: str = Depends(get_user_agent),
) -> IssuedTokenResponse:
    result = service.request_download(current_user.id, identifier, client_ip, user_agent)

    if isinstance(result, DownloadRefusal):
        detail = {
            "code": result.code,
            "message": result.message,
            "suggestion": result.suggestion,
            "access_method": result.method.value,
        }
        if result.code == REFUSAL_INVALID_IDENTIFIER:
            detail["hint"] = SUPPORTED_FORMATS_HINT
        if settings.debug:
            detail["classification"] = _classification_out(result.classification).model_dump()
        raise HTTPException(status_code=_REFUSAL_STATUS.get(result.code, status.HTTP_403_FORBIDDEN), detail=detail)

    token = result.token
    return IssuedTokenResponse(
        token=token.token,
        token_id=token.id,
        product_id=token.product_id,
        product_title=result.product.title,
        file_keys=list(token.file_keys),
        max_downloads=token.max_downloads,
        remaining_downloads=token.max_downloads - token.download_count,
        expires_at=token.expires_at,
        access_method=result.decision.method.value,
        download_url=str(request.url_for("secure_download", token=token.token)),
        classification=_classification_out(result.classification) if settings.debug else None,
    )


@router.get("/secure/{token}", response_model=SecureDownloadResponse, name="secure_download")
def secure_download(
    token: str,
    file: Optional[str] = None,
    validator: TokenValidator = Depends(get_validator),
    client_ip: str = Depends(get_client_ip),
    user_agent: str = Depends(get_user_agent),
) -> SecureDownloadResponse:
    result = validator.validate(token, client_ip, user_agent)
    if isinstance(result, Denial):
        raise _denial_exception(result)

    file_key = _resolve_file(result.token, file)
    return SecureDownloadResponse(
        token_id=result.token.id,
        file_key=file_key,
        file_name=_file_name(file_key),
        remaining_downloads=result.remaining_downloads,
        expires_at=result.token.expires_at,
    )


@router.head("/secure/{token}")
def secure_download_head(
    token: str,
    file: Optional[str] = None,
    validator: TokenValidator = Depends(get_validator),
    client_ip: str = Depends(get_client_ip),
    user_agent: str = Depends(get_user_agent),
) -> Response:
    result = validator.validate(token, client_ip, user_agent)
    if isinstance(result, Denial):
        return Response(status_code=status.HTTP_403_FORBIDDEN, headers={"X-Denial-Code": result.code.value})
    try:
        file_key = _resolve_file(result.token, file)
    except HTTPException as exc:
        return Response(status_code=exc.status_code)
    file_name = _file_name(file_key)
    return Response(
        status_code=status.HTTP_200_OK,
        headers={
            "Content-Disposition": f'attachment; filename="{file_name}"',
            "X-File-Name": file_name,
            "X-Remaining-Downloads": str(result.remaining_downloads),
        },
    )


@router.post("/secure/{token}/complete", response_model=TransferCompleteResponse)
def complete_transfer(
    token: str,
    payload: TransferCompleteRequest,
    validator: TokenValidator = Depends(get_validator),
    recorder: DownloadRecorder = Depends(get_recorder),
    client_ip: str = Depends(get_client_ip),
    user_agent: str = Depends(get_user_agent),
) -> TransferCompleteResponse:
    """Called once the transfer layer has finished (or given up on) sending a file."""
    result = validator.validate(token, client_ip, user_agent)
    if isinstance(result, Denial):
        raise _denial_exception(result)

    download_token = result.token
    file_key = _resolve_file(download_token, payload.file_key)
    transfer = TransferDetails(
        user_ip=client_ip,
        user_agent=user_agent,
        file_size=payload.file_size,
        content_type=payload.content_type,
    )

    if not payload.success:
        # Aborted transfers are audited but never consume quota
        error = payload.error or "Transfer failed"
        recorder.record_failure(download_token.id, file_key, transfer, error)
        return TransferCompleteResponse(
            recorded=False,
            download_count=download_token.download_count,
            remaining_downloads=result.remaining_downloads,
            token_active=download_token.status == TOKEN_STATUS_ACTIVE,
            error=error,
        )

    outcome = recorder.record(download_token.id, file_key, transfer)
    if not outcome.success:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                "code": _RECORD_ERROR_CODES.get(outcome.error, "download_limit_reached"),
                "message": outcome.error,
            },
        )

    return TransferCompleteResponse(
        recorded=True,
        download_count=outcome.download_count,
        remaining_downloads=max(download_token.max_downloads - outcome.download_count, 0),
        token_active=download_token.status == TOKEN_STATUS_ACTIVE,
    )
