from datetime import datetime, timedelta, timezone

import pytest

from download_access.db.session import Base, engine, SessionLocal
from download_access.models.catalog import Product
from download_access.models.entitlement import AccessPass, License
from download_access.models.user import User
from download_access.services.classifier import Classification, Kind
from download_access.services.downloads import suggestion_for
from download_access.services.entitlements import AccessDecision, AccessMethod, SqlEntitlementOracle


@pytest.fixture(autouse=True)
def _reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def seed_catalog(db):
    db.add_all(
        [
            User(id="user-1", email="u1@example.com"),
            User(id="user-2", email="u2@example.com"),
            Product(id="prod-1", title="Preset Pack", file_keys=["products/prod-1/pack.zip"]),
            Product(id="prod-2", title="LUT Bundle", file_keys=["products/prod-2/luts.zip"]),
        ]
    )
    db.commit()


def add_license(db, license_id="license_001", user_id="user-1", product_id="prod-1", **fields):
    lic = License(id=license_id, user_id=user_id, product_id=product_id, **fields)
    db.add(lic)
    db.commit()
    return lic


def add_access_pass(db, pass_id="pass_001", user_id="user-1", **fields):
    access_pass = AccessPass(id=pass_id, user_id=user_id, **fields)
    db.add(access_pass)
    db.commit()
    return access_pass


def test_explicit_license_grants_access():
    db = SessionLocal()
    try:
        seed_catalog(db)
        add_license(db)
        decision = SqlEntitlementOracle(db).check_access("user-1", license_id="license_001")
        assert decision.can_download is True
        assert decision.method == AccessMethod.LICENSE
        assert decision.license.product_id == "prod-1"
    finally:
        db.close()


def test_license_of_another_user_is_not_found():
    db = SessionLocal()
    try:
        seed_catalog(db)
        add_license(db, user_id="user-2")
        decision = SqlEntitlementOracle(db).check_access("user-1", license_id="license_001")
        assert decision.can_download is False
        assert decision.method == AccessMethod.NONE
        assert decision.reason == "License not found"
    finally:
        db.close()


@pytest.mark.parametrize(
    "fields, reason",
    [
        ({"revoked_at": datetime(2024, 1, 1, tzinfo=timezone.utc), "revoked_reason": "refund"}, "License revoked"),
        ({"expires_at": datetime.now(timezone.utc) - timedelta(days=1)}, "License expired"),
        ({"download_limit": 2, "download_count": 2}, "License download limit reached"),
    ],
)
def test_unusable_license_is_refused(fields, reason):
    db = SessionLocal()
    try:
        seed_catalog(db)
        add_license(db, **fields)
        oracle = SqlEntitlementOracle(db)
        assert oracle.check_access("user-1", license_id="license_001").reason == reason
        assert oracle.check_access("user-1", product_id="prod-1").reason == reason
    finally:
        db.close()


def test_product_license_grants_access():
    db = SessionLocal()
    try:
        seed_catalog(db)
        add_license(db, expires_at=datetime.now(timezone.utc) + timedelta(days=30), download_limit=5, download_count=1)
        decision = SqlEntitlementOracle(db).check_access("user-1", product_id="prod-1")
        assert decision.can_download is True
        assert decision.method == AccessMethod.LICENSE
        assert decision.license.id == "license_001"
    finally:
        db.close()


def test_access_pass_covers_every_product():
    db = SessionLocal()
    try:
        seed_catalog(db)
        add_access_pass(db, expires_at=datetime.now(timezone.utc) + timedelta(days=30))
        oracle = SqlEntitlementOracle(db)
        for product_id in ("prod-1", "prod-2"):
            decision = oracle.check_access("user-1", product_id=product_id)
            assert decision.can_download is True
            assert decision.method == AccessMethod.ACCESS_PASS
            assert decision.access_pass.id == "pass_001"
    finally:
        db.close()


def test_lifetime_access_pass_has_no_expiry():
    db = SessionLocal()
    try:
        seed_catalog(db)
        add_access_pass(db, pass_type="lifetime")
        decision = SqlEntitlementOracle(db).check_access("user-1", product_id="prod-2")
        assert decision.method == AccessMethod.ACCESS_PASS
    finally:
        db.close()


def test_expired_or_cancelled_access_pass_is_ignored():
    db = SessionLocal()
    try:
        seed_catalog(db)
        add_access_pass(db, pass_id="pass_old", expires_at=datetime.now(timezone.utc) - timedelta(days=1))
        add_access_pass(db, pass_id="pass_cancelled", status="cancelled")
        decision = SqlEntitlementOracle(db).check_access("user-1", product_id="prod-1")
        assert decision.can_download is False
        assert decision.reason == "No valid license or access pass found"
    finally:
        db.close()


def test_no_entitlement():
    db = SessionLocal()
    try:
        seed_catalog(db)
        add_license(db, user_id="user-2")
        decision = SqlEntitlementOracle(db).check_access("user-1", product_id="prod-1")
        assert decision.can_download is False
        assert decision.method == AccessMethod.NONE
    finally:
        db.close()


def test_suggestions_follow_refusal_reason():
    confident = Classification(Kind.PRODUCT, 80)
    vague = Classification(Kind.SMART_HYBRID, 60)

    expired = suggestion_for(AccessDecision(False, AccessMethod.NONE, reason="License expired"), confident)
    assert "Purchase a new license" in expired

    limit = suggestion_for(AccessDecision(False, AccessMethod.NONE, reason="License download limit reached"), confident)
    assert "Upgrade your license" in limit

    missing = AccessDecision(False, AccessMethod.NONE, reason="License not found")
    assert "individually" in suggestion_for(missing, confident)
    assert "Check your download ID format" in suggestion_for(missing, vague)

    nothing = AccessDecision(False, AccessMethod.NONE, reason="No valid license or access pass found")
    assert suggestion_for(nothing, confident).endswith("1) Purchase this product, or 2) Get an Access Pass for unlimited downloads.")


def test_granted_download_counts_against_license_limit():
    db = SessionLocal()
    try:
        seed_catalog(db)
        add_license(db, download_limit=1)
        oracle = SqlEntitlementOracle(db)

        decision = oracle.check_access("user-1", license_id="license_001")
        assert decision.can_download is True
        assert oracle.record_grant(decision) is True
        # A second grant racing on the same stale decision is refused in SQL
        assert oracle.record_grant(decision) is False

        lic = db.query(License).filter(License.id == "license_001").first()
        db.refresh(lic)
        assert lic.download_count == 1
        assert lic.last_download_at is not None

        assert oracle.check_access("user-1", license_id="license_001").reason == "License download limit reached"
    finally:
        db.close()


def test_unlimited_license_keeps_counting():
    db = SessionLocal()
    try:
        seed_catalog(db)
        add_license(db)
        oracle = SqlEntitlementOracle(db)
        decision = oracle.check_access("user-1", product_id="prod-1")
        for _ in range(3):
            assert oracle.record_grant(decision) is True

        lic = db.query(License).filter(License.id == "license_001").first()
        db.refresh(lic)
        assert lic.download_count == 3
    finally:
        db.close()


def test_granted_download_is_tracked_on_access_pass():
    db = SessionLocal()
    try:
        seed_catalog(db)
        add_access_pass(db, pass_type="lifetime")
        oracle = SqlEntitlementOracle(db)
        decision = oracle.check_access("user-1", product_id="prod-2")
        assert oracle.record_grant(decision) is True
        assert oracle.record_grant(decision) is True

        access_pass = db.query(AccessPass).filter(AccessPass.id == "pass_001").first()
        db.refresh(access_pass)
        assert access_pass.download_count == 2
        assert oracle.check_access("user-1", product_id="prod-2").can_download is True
    finally:
        db.close()


def test_refused_decision_records_nothing():
    db = SessionLocal()
    try:
        seed_catalog(db)
        oracle = SqlEntitlementOracle(db)
        decision = oracle.check_access("user-1", product_id="prod-1")
        assert oracle.record_grant(decision) is False
    finally:
        db.close()
