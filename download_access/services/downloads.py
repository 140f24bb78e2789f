import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from download_access.models.catalog import Product
from download_access.models.token import DownloadToken
from download_access.services.catalog import SqlCatalog
from download_access.services.classifier import Classification, Kind, RequestClassifier
from download_access.services.denials import DENIAL_MESSAGES, DenialCode
from download_access.services.entitlements import AccessDecision, AccessMethod, EntitlementOracle
from download_access.services.issuer import IssueOptions, TokenIssuer


logger = logging.getLogger(__name__)

REFUSAL_INVALID_IDENTIFIER = "invalid_identifier"
REFUSAL_PRODUCT_NOT_FOUND = "product_not_found"
REFUSAL_NO_FILES = "no_files"


@dataclass(frozen=True)
class DownloadGrant:
    token: DownloadToken
    product: Product
    classification: Classification
    decision: AccessDecision


@dataclass(frozen=True)
class DownloadRefusal:
    code: str
    message: str
    classification: Classification
    suggestion: Optional[str] = None
    method: AccessMethod = AccessMethod.NONE


def suggestion_for(decision: AccessDecision, classification: Classification) -> str:
    base = "To download this product, you can:"
    reason = (decision.reason or "").lower()
    if decision.method == AccessMethod.NONE:
        if "expired" in reason:
            return f"{base} 1) Purchase a new license, or 2) Get an Access Pass for unlimited downloads of all products."
        if "limit" in reason:
            return f"{base} 1) Upgrade your license, or 2) Get an Access Pass for unlimited downloads."
        if "not found" in reason:
            if classification.confidence < 70:
                return (
                    f"{base} 1) Check your download ID format, 2) Purchase this product, "
                    "or 3) Get an Access Pass for unlimited access."
                )
            return f"{base} 1) Purchase this product individually, or 2) Get an Access Pass for unlimited downloads of all products."
    return f"{base} 1) Purchase this product, or 2) Get an Access Pass for unlimited downloads."


class DownloadAccessService:
    """Turns an opaque download identifier into a freshly issued download token."""

    def __init__(
        self,
        classifier: RequestClassifier,
        oracle: EntitlementOracle,
        catalog: SqlCatalog,
        issuer: TokenIssuer,
    ):
        self.classifier = classifier
        self.oracle = oracle
        self.catalog = catalog
        self.issuer = issuer

    def request_download(
        self, user_id: str, identifier: str, user_ip: str, user_agent: str
    ) -> Union[DownloadGrant, DownloadRefusal]:
        classification = self.classifier.classify(identifier)
        if classification.kind == Kind.UNKNOWN:
            return DownloadRefusal(
                code=REFUSAL_INVALID_IDENTIFIER,
                message="Invalid download ID format",
                classification=classification,
                suggestion=classification.suggestion,
            )

        product_id: Optional[str] = None
        scoped_keys: Optional[List[str]] = None

        if classification.kind == Kind.LICENSE:
            decision = self.oracle.check_access(user_id, license_id=identifier)
            if decision.can_download and decision.license is not None:
                product_id = decision.license.product_id
        elif classification.kind == Kind.ACCESS_PASS_PRODUCT:
            product_id = classification.product_id
            decision = self.oracle.check_access(user_id, product_id=product_id)
        elif classification.kind == Kind.PARTNER_ASSET:
            asset = self.catalog.get_partner_asset(identifier)
            if asset is None:
                # Same answer as a missing entitlement so asset ids cannot be probed
                decision = AccessDecision(False, AccessMethod.NONE, reason="Partner asset not found")
            else:
                product_id = asset.product_id
                scoped_keys = [asset.file_key]
                decision = self.oracle.check_access(user_id, product_id=product_id)
        elif classification.kind == Kind.SMART_HYBRID:
            product_id = identifier
            decision = self.oracle.check_access(user_id, product_id=identifier)
            if not decision.can_download:
                by_license = self.oracle.check_access(user_id, license_id=identifier)
                if by_license.can_download and by_license.license is not None:
                    decision = by_license
                    product_id = by_license.license.product_id
        else:
            product_id = identifier
            decision = self.oracle.check_access(user_id, product_id=identifier)

        if not decision.can_download:
            return self._not_entitled(user_id, classification, decision)

        product = self.catalog.get_product(product_id) if product_id else None
        if product is None:
            return DownloadRefusal(
                code=REFUSAL_PRODUCT_NOT_FOUND,
                message="Product not found",
                classification=classification,
                suggestion="The product may have been removed or the ID is invalid",
                method=decision.method,
            )

        candidate_keys = scoped_keys if scoped_keys is not None else list(product.file_keys or [])
        authorized_keys = [key for key in candidate_keys if key]
        if not authorized_keys:
            return self._no_files(classification, decision)

        if not self.oracle.record_grant(decision):
            # Another request used the last download of this license first
            spent = AccessDecision(False, AccessMethod.NONE, reason="License download limit reached")
            return self._not_entitled(user_id, classification, spent)

        try:
            token = self.issuer.issue(
                user_id=user_id,
                order_id=self._order_reference(decision),
                product_id=product.id,
                file_keys=authorized_keys,
                options=IssueOptions(user_ip=user_ip, user_agent=user_agent, product_title=product.title),
                authorized_file_keys=authorized_keys,
            )
        except ValueError as exc:
            logger.warning("Could not issue a token for product %s: %s", product.id, exc)
            return self._no_files(classification, decision)
        return DownloadGrant(token=token, product=product, classification=classification, decision=decision)

    @staticmethod
    def _not_entitled(user_id: str, classification: Classification, decision: AccessDecision) -> DownloadRefusal:
        logger.info("Download refused for user %s (%s): %s", user_id, classification.kind.value, decision.reason)
        return DownloadRefusal(
            code=DenialCode.NOT_ENTITLED.value,
            message=DENIAL_MESSAGES[DenialCode.NOT_ENTITLED],
            classification=classification,
            suggestion=suggestion_for(decision, classification),
            method=decision.method,
        )

    @staticmethod
    def _no_files(classification: Classification, decision: AccessDecision) -> DownloadRefusal:
        return DownloadRefusal(
            code=REFUSAL_NO_FILES,
            message="No files available for download",
            classification=classification,
            method=decision.method,
        )

    @staticmethod
    def _order_reference(decision: AccessDecision) -> str:
        if decision.license is not None:
            return decision.license.id
        if decision.access_pass is not None:
            return decision.access_pass.id
        return decision.method.value
