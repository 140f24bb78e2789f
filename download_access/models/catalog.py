from sqlalchemy import Column, String, JSON, ForeignKey

from download_access.db.session import Base


PARTNER_ASSET_LIVE_STATUSES = ("uploaded", "ready")


class Product(Base):
    __tablename__ = "products"

    id = Column(String(64), primary_key=True)
    title = Column(String(255), nullable=False)
    # Storage keys of the deliverable files, in display order
    file_keys = Column(JSON, nullable=False, default=list)


class PartnerAsset(Base):
    __tablename__ = "partner_assets"

    id = Column(String(64), primary_key=True)
    product_id = Column(String(64), ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    file_key = Column(String(512), nullable=False)
    status = Column(String(20), nullable=False, server_default="uploaded")
