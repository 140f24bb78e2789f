from download_access.services.classifier import (
    FORMAT_SUGGESTION,
    Classification,
    ExistenceCache,
    Kind,
    RequestClassifier,
)


OBJECT_ID = "64b7f0c2a1e3d4f5a6b7c8d9"
UUID_ID = "3f2b8c1e-9d4a-4e6b-8f7c-1a2b3c4d5e6f"
SLUG_ID = "summer-preset-pack"


class FakeCatalog:
    def __init__(self, products=(), assets=(), fail=False):
        self.products = set(products)
        self.assets = set(assets)
        self.fail = fail
        self.product_lookups = 0
        self.asset_lookups = 0

    def product_exists(self, product_id):
        self.product_lookups += 1
        if self.fail:
            raise RuntimeError("catalog down")
        return product_id in self.products

    def partner_asset_exists(self, asset_id):
        self.asset_lookups += 1
        if self.fail:
            raise RuntimeError("catalog down")
        return asset_id in self.assets


class FakeMonotonic:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_license_prefixes():
    classifier = RequestClassifier(FakeCatalog())
    for identifier in ("license_abc123", "li_42", "lic-99", "LIC_7"):
        result = classifier.classify(identifier)
        assert result.kind == Kind.LICENSE
        assert result.confidence == 95


def test_access_pass_prefixes_extract_product():
    classifier = RequestClassifier(FakeCatalog())
    assert classifier.classify("ap_prod1") == Classification(Kind.ACCESS_PASS_PRODUCT, 95, product_id="prod1")
    result = classifier.classify("access_pass_" + OBJECT_ID)
    assert result.kind == Kind.ACCESS_PASS_PRODUCT
    assert result.product_id == OBJECT_ID


def test_partner_asset_prefixes():
    classifier = RequestClassifier(FakeCatalog())
    for identifier in ("asset_001", "pa_77", "partner_asset-abc", "Partner_Asset_abc"):
        result = classifier.classify(identifier)
        assert result.kind == Kind.PARTNER_ASSET
        assert result.confidence == 90


def test_prefix_rules_do_not_consult_catalog():
    catalog = FakeCatalog()
    classifier = RequestClassifier(catalog)
    classifier.classify("license_abc123")
    classifier.classify("ap_prod1")
    assert catalog.product_lookups == 0
    assert catalog.asset_lookups == 0


def test_object_id_shape():
    classifier = RequestClassifier(FakeCatalog(products=[OBJECT_ID]))
    assert classifier.classify(OBJECT_ID) == Classification(Kind.PRODUCT, 80)

    classifier = RequestClassifier(FakeCatalog(assets=[OBJECT_ID]))
    assert classifier.classify(OBJECT_ID) == Classification(Kind.PARTNER_ASSET, 85)

    miss = RequestClassifier(FakeCatalog()).classify(OBJECT_ID)
    assert miss.kind == Kind.UNKNOWN
    assert miss.confidence == 20
    assert "ObjectId" in miss.suggestion


def test_uuid_shape():
    classifier = RequestClassifier(FakeCatalog(products=[UUID_ID]))
    assert classifier.classify(UUID_ID) == Classification(Kind.PRODUCT, 75)

    classifier = RequestClassifier(FakeCatalog(assets=[UUID_ID]))
    assert classifier.classify(UUID_ID) == Classification(Kind.PARTNER_ASSET, 80)

    miss = RequestClassifier(FakeCatalog()).classify(UUID_ID)
    assert miss.kind == Kind.UNKNOWN
    assert miss.confidence == 25


def test_generic_shape():
    classifier = RequestClassifier(FakeCatalog(products=[SLUG_ID]))
    assert classifier.classify(SLUG_ID) == Classification(Kind.SMART_HYBRID, 60)

    classifier = RequestClassifier(FakeCatalog(assets=[SLUG_ID]))
    assert classifier.classify(SLUG_ID) == Classification(Kind.PARTNER_ASSET, 65)

    miss = RequestClassifier(FakeCatalog()).classify(SLUG_ID)
    assert miss.kind == Kind.UNKNOWN
    assert miss.confidence == 30
    assert "license_xxx" in miss.suggestion


def test_partner_asset_checked_before_product():
    catalog = FakeCatalog(products=[OBJECT_ID], assets=[OBJECT_ID])
    result = RequestClassifier(catalog).classify(OBJECT_ID)
    assert result.kind == Kind.PARTNER_ASSET
    assert catalog.product_lookups == 0


def test_unrecognised_identifiers_fall_back_to_unknown():
    classifier = RequestClassifier(FakeCatalog())
    for identifier in ("", "   ", "short", "bad id!", "ap_"):
        result = classifier.classify(identifier)
        assert result.kind == Kind.UNKNOWN
        assert result.confidence == 10
        assert result.suggestion == FORMAT_SUGGESTION


def test_identifier_is_trimmed():
    result = RequestClassifier(FakeCatalog()).classify("  license_abc123 \n")
    assert result.kind == Kind.LICENSE


def test_existence_lookups_are_cached_until_ttl():
    clock = FakeMonotonic()
    catalog = FakeCatalog(products=[OBJECT_ID])
    classifier = RequestClassifier(catalog, cache=ExistenceCache(ttl_seconds=300, clock=clock))

    classifier.classify(OBJECT_ID)
    classifier.classify(OBJECT_ID)
    assert catalog.product_lookups == 1
    assert catalog.asset_lookups == 1

    clock.now += 299
    classifier.classify(OBJECT_ID)
    assert catalog.product_lookups == 1

    clock.now += 1
    classifier.classify(OBJECT_ID)
    assert catalog.product_lookups == 2


def test_failing_lookup_counts_as_missing_and_is_not_cached():
    cache = ExistenceCache()
    catalog = FakeCatalog(products=[OBJECT_ID], fail=True)
    classifier = RequestClassifier(catalog, cache=cache)

    result = classifier.classify(OBJECT_ID)
    assert result.kind == Kind.UNKNOWN
    assert result.confidence == 20
    assert len(cache) == 0

    catalog.fail = False
    assert classifier.classify(OBJECT_ID) == Classification(Kind.PRODUCT, 80)


def test_cache_evicts_oldest_entry_when_full():
    cache = ExistenceCache(max_entries=2)
    cache.set("product", "a", True)
    cache.set("product", "b", False)
    cache.set("product", "c", True)

    assert len(cache) == 2
    assert cache.get("product", "a") is None
    assert cache.get("product", "b") is False
    assert cache.get("product", "c") is True


def test_cache_namespaces_are_separate():
    cache = ExistenceCache()
    cache.set("product", "x", True)
    assert cache.get("partner_asset", "x") is None
    cache.clear()
    assert cache.get("product", "x") is None
