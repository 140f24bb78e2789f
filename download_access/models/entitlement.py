from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, func

from download_access.db.session import Base


class License(Base):
    __tablename__ = "licenses"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(String(64), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    license_type = Column(String(20), nullable=False, server_default="standard")
    # NULL means unlimited
    download_limit = Column(Integer, nullable=True)
    download_count = Column(Integer, nullable=False, default=0, server_default="0")
    expires_at = Column(DateTime(timezone=True), nullable=True)
    last_download_at = Column(DateTime(timezone=True), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoked_reason = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class AccessPass(Base):
    __tablename__ = "access_passes"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    pass_type = Column(String(20), nullable=False, server_default="monthly")
    status = Column(String(20), nullable=False, server_default="active")
    # NULL for lifetime passes
    expires_at = Column(DateTime(timezone=True), nullable=True)
    # Usage only; passes are never limited by it
    download_count = Column(Integer, nullable=False, default=0, server_default="0")
    last_download_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
