from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ClassificationOut(BaseModel):
    kind: str
    confidence: int
    suggestion: Optional[str] = None
    product_id: Optional[str] = None


class IssuedTokenResponse(BaseModel):
    token: str
    token_id: str
    product_id: str
    product_title: Optional[str] = None
    file_keys: List[str]
    max_downloads: int
    remaining_downloads: int
    expires_at: datetime
    access_method: str
    download_url: str
    classification: Optional[ClassificationOut] = None


class SecureDownloadResponse(BaseModel):
    token_id: str
    file_key: str
    file_name: str
    remaining_downloads: int
    expires_at: datetime


class TransferCompleteRequest(BaseModel):
    file_key: str = Field(min_length=1, max_length=512)
    file_size: int = Field(default=0, ge=0)
    content_type: Optional[str] = Field(default=None, max_length=255)
    success: bool = True
    error: Optional[str] = Field(default=None, max_length=2000)


class TransferCompleteResponse(BaseModel):
    recorded: bool
    download_count: Optional[int] = None
    remaining_downloads: Optional[int] = None
    token_active: bool
    error: Optional[str] = None


class DownloadActivityOut(BaseModel):
    id: int
    token_id: str
    file_key: str
    downloaded_at: datetime
    user_ip: str
    user_agent: str
    file_size: int
    content_type: Optional[str] = None
    success: bool
    error: Optional[str] = None

    class Config:
        from_attributes = True


class ProductDownloadStats(BaseModel):
    product_id: str
    downloads: int = 0
    data_transferred: int = 0


class DownloadStats(BaseModel):
    timeframe: str
    total_downloads: int
    unique_products: int
    data_transferred: int
    top_products: List[ProductDownloadStats]


class TokenRecord(BaseModel):
    id: str
    user_id: str
    order_id: str
    product_id: str
    file_keys: List[str]
    max_downloads: int
    download_count: int
    status: str
    deactivation_reason: Optional[str] = None
    deactivated_at: Optional[datetime] = None
    created_at: datetime
    expires_at: datetime
    regenerated_at: Optional[datetime] = None
    regeneration_reason: Optional[str] = None
    ip_validation: bool
    user_agent_validation: bool
    single_use: bool

    class Config:
        from_attributes = True


class TokenDeactivateRequest(BaseModel):
    reason: Literal["manual", "security"] = "manual"


class TokenRegenerateRequest(BaseModel):
    reason: str = Field(default="security_regeneration", min_length=1, max_length=100)


class TokenRegenerateResponse(BaseModel):
    token_id: str
    token: str


class CleanupResponse(BaseModel):
    cleaned: int
    errors: List[str]
