from typing import Optional, Protocol

from sqlalchemy.orm import Session

from download_access.models.catalog import PartnerAsset, Product, PARTNER_ASSET_LIVE_STATUSES


class Catalog(Protocol):
    def product_exists(self, product_id: str) -> bool: ...

    def partner_asset_exists(self, asset_id: str) -> bool: ...


class SqlCatalog:
    """Read-only view over the product and partner-asset tables."""

    def __init__(self, db: Session):
        self.db = db

    def get_product(self, product_id: str) -> Optional[Product]:
        return self.db.query(Product).filter(Product.id == product_id).first()

    def get_partner_asset(self, asset_id: str) -> Optional[PartnerAsset]:
        return (
            self.db.query(PartnerAsset)
            .filter(PartnerAsset.id == asset_id, PartnerAsset.status.in_(PARTNER_ASSET_LIVE_STATUSES))
            .first()
        )

    def product_exists(self, product_id: str) -> bool:
        return self.db.query(Product.id).filter(Product.id == product_id).first() is not None

    def partner_asset_exists(self, asset_id: str) -> bool:
        return self.get_partner_asset(asset_id) is not None
