from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text, CheckConstraint

from download_access.db.session import Base


TOKEN_STATUS_ACTIVE = "active"
TOKEN_STATUS_INACTIVE = "inactive"

DEACTIVATION_REASONS = (
    "expired",
    "download_limit_reached",
    "download_completed",
    "manual",
    "security",
)


class DownloadToken(Base):
    __tablename__ = "download_tokens"

    id = Column(String(36), primary_key=True)
    token = Column(String(128), unique=True, nullable=False, index=True)

    # Scope
    user_id = Column(String(64), nullable=False, index=True)
    order_id = Column(String(64), nullable=False)
    product_id = Column(String(64), nullable=False, index=True)
    file_keys = Column(JSON, nullable=False)

    # Quota; the guarded increment in TokenStore keeps count <= max
    max_downloads = Column(Integer, nullable=False)
    download_count = Column(Integer, nullable=False, default=0, server_default="0")

    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    regenerated_at = Column(DateTime(timezone=True), nullable=True)
    regeneration_reason = Column(String(100), nullable=True)

    # Restrictions
    ip_validation = Column(Boolean, nullable=False, default=True)
    user_agent_validation = Column(Boolean, nullable=False, default=True)
    single_use = Column(Boolean, nullable=False, default=False)

    status = Column(String(16), nullable=False, default=TOKEN_STATUS_ACTIVE, server_default=TOKEN_STATUS_ACTIVE)
    deactivation_reason = Column(String(32), nullable=True)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)

    # Baselines captured at issuance, never updated
    user_ip = Column(String(45), nullable=True)
    user_agent = Column(String(512), nullable=True)
    order_number = Column(String(64), nullable=True)
    product_title = Column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint("max_downloads >= 1", name="ck_download_tokens_max_downloads"),
        CheckConstraint("download_count <= max_downloads", name="ck_download_tokens_quota"),
        Index("ix_download_tokens_status_expires", "status", "expires_at"),
    )


class DownloadActivity(Base):
    __tablename__ = "download_activities"

    id = Column(Integer, primary_key=True)
    token_id = Column(String(36), ForeignKey("download_tokens.id", ondelete="CASCADE"), nullable=False, index=True)
    file_key = Column(String(512), nullable=False)
    downloaded_at = Column(DateTime(timezone=True), nullable=False)
    user_ip = Column(String(45), nullable=False)
    user_agent = Column(String(512), nullable=False)
    file_size = Column(Integer, nullable=False, default=0)
    content_type = Column(String(255), nullable=True)
    success = Column(Boolean, nullable=False)
    error = Column(Text, nullable=True)
