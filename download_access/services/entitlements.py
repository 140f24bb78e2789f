from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Protocol

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from download_access.core.clock import to_aware_utc, utcnow
from download_access.models.entitlement import AccessPass, License


class AccessMethod(str, Enum):
    LICENSE = "license"
    ACCESS_PASS = "access_pass"
    NONE = "none"


@dataclass(frozen=True)
class AccessDecision:
    can_download: bool
    method: AccessMethod
    reason: Optional[str] = None
    license: Optional[License] = None
    access_pass: Optional[AccessPass] = None


class EntitlementOracle(Protocol):
    def check_access(
        self, user_id: str, product_id: Optional[str] = None, license_id: Optional[str] = None
    ) -> AccessDecision: ...

    def record_grant(self, decision: AccessDecision) -> bool: ...


class SqlEntitlementOracle:
    """Answers ownership questions from the licenses and access_passes tables.

    Order of checks: an explicit license id, then an active access pass
    (covers every product), then a license for the requested product.
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def check_access(
        self, user_id: str, product_id: Optional[str] = None, license_id: Optional[str] = None
    ) -> AccessDecision:
        if license_id:
            lic: Optional[License] = (
                self.db.query(License).filter(License.id == license_id, License.user_id == user_id).first()
            )
            if not lic:
                return AccessDecision(False, AccessMethod.NONE, reason="License not found")
            problem = self._license_problem(lic)
            if problem:
                return AccessDecision(False, AccessMethod.NONE, reason=problem)
            return AccessDecision(True, AccessMethod.LICENSE, license=lic)

        access_pass = self._active_access_pass(user_id)
        if access_pass:
            return AccessDecision(True, AccessMethod.ACCESS_PASS, access_pass=access_pass)

        if product_id:
            lic = (
                self.db.query(License)
                .filter(License.user_id == user_id, License.product_id == product_id)
                .order_by(License.created_at.desc())
                .first()
            )
            if lic:
                problem = self._license_problem(lic)
                if problem:
                    return AccessDecision(False, AccessMethod.NONE, reason=problem)
                return AccessDecision(True, AccessMethod.LICENSE, license=lic)

        return AccessDecision(False, AccessMethod.NONE, reason="No valid license or access pass found")

    def record_grant(self, decision: AccessDecision) -> bool:
        """Count a granted download against the license or access pass that allowed it.

        The license increment is guarded by its limit in SQL, so two grants
        racing for the last download cannot both succeed. Returns False when
        the license was used up in the meantime.
        """
        now = self.clock()
        if decision.license is not None:
            stmt = (
                update(License)
                .where(
                    License.id == decision.license.id,
                    or_(License.download_limit.is_(None), License.download_count < License.download_limit),
                )
                .values(download_count=License.download_count + 1, last_download_at=now)
                .execution_options(synchronize_session=False)
            )
        elif decision.access_pass is not None:
            stmt = (
                update(AccessPass)
                .where(AccessPass.id == decision.access_pass.id)
                .values(download_count=AccessPass.download_count + 1, last_download_at=now)
                .execution_options(synchronize_session=False)
            )
        else:
            return False
        result = self.db.execute(stmt)
        self.db.commit()
        return result.rowcount == 1

    def _license_problem(self, lic: License) -> Optional[str]:
        if lic.revoked_at is not None:
            return "License revoked"
        expires_at = to_aware_utc(lic.expires_at)
        if expires_at is not None and expires_at <= self.clock():
            return "License expired"
        if lic.download_limit is not None and lic.download_count >= lic.download_limit:
            return "License download limit reached"
        return None

    def _active_access_pass(self, user_id: str) -> Optional[AccessPass]:
        now = self.clock()
        passes = (
            self.db.query(AccessPass)
            .filter(AccessPass.user_id == user_id, AccessPass.status == "active")
            .all()
        )
        for access_pass in passes:
            expires_at = to_aware_utc(access_pass.expires_at)
            if expires_at is None or expires_at > now:
                return access_pass
        return None
