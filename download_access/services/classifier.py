"""Classification of caller-supplied download identifiers.

An identifier may name a license, a product, an access-pass alias of a product
or a partner asset. Classification walks an ordered list of rules; the first
rule that produces a result wins. Prefix rules are purely syntactic, shape
rules confirm the id against the catalog (partner assets first, since asset
and product ids share the same syntactic space).
"""
import logging
import re
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Protocol, Sequence, Tuple

from download_access.services.catalog import Catalog


logger = logging.getLogger(__name__)


class Kind(str, Enum):
    LICENSE = "license"
    PRODUCT = "product"
    ACCESS_PASS_PRODUCT = "access_pass_product"
    PARTNER_ASSET = "partner_asset"
    SMART_HYBRID = "smart_hybrid"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Classification:
    kind: Kind
    confidence: int
    suggestion: Optional[str] = None
    # Product id embedded in an access-pass alias
    product_id: Optional[str] = None


class Rule(Protocol):
    def apply(self, identifier: str, classifier: "RequestClassifier") -> Optional[Classification]: ...


FORMAT_SUGGESTION = "Use format: license_[id], ap_[productId], asset_[id], or a valid product ID"


class ExistenceCache:
    """Bounded TTL map of (namespace, id) -> exists.

    Advisory only: entries expire after ``ttl_seconds`` and are never refreshed
    in the background. When full, the oldest entry is evicted.
    """

    def __init__(self, ttl_seconds: float = 300, max_entries: int = 10_000, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[Tuple[str, str], Tuple[bool, float]] = {}
        self._lock = threading.Lock()

    def get(self, namespace: str, key: str) -> Optional[bool]:
        with self._lock:
            entry = self._entries.get((namespace, key))
            if entry is None:
                return None
            value, stored_at = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[(namespace, key)]
                return None
            return value

    def set(self, namespace: str, key: str, value: bool) -> None:
        with self._lock:
            if (namespace, key) not in self._entries and len(self._entries) >= self.max_entries:
                self._entries.pop(next(iter(self._entries)))
            self._entries[(namespace, key)] = (value, self._clock())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class PrefixRule:
    pattern: "re.Pattern[str]"
    kind: Kind
    confidence: int
    # Group 1 holds the embedded product id
    extracts_product: bool = False

    def apply(self, identifier: str, classifier: "RequestClassifier") -> Optional[Classification]:
        match = self.pattern.match(identifier)
        if not match:
            return None
        product_id = match.group(1) if self.extracts_product else None
        return Classification(self.kind, self.confidence, product_id=product_id)


@dataclass(frozen=True)
class ShapeRule:
    pattern: "re.Pattern[str]"
    asset_confidence: int
    product_confidence: int
    product_kind: Kind
    miss_confidence: int
    miss_suggestion: str

    def apply(self, identifier: str, classifier: "RequestClassifier") -> Optional[Classification]:
        if not self.pattern.match(identifier):
            return None
        if classifier.partner_asset_exists(identifier):
            return Classification(Kind.PARTNER_ASSET, self.asset_confidence)
        if classifier.product_exists(identifier):
            return Classification(self.product_kind, self.product_confidence)
        return Classification(Kind.UNKNOWN, self.miss_confidence, suggestion=self.miss_suggestion)


DEFAULT_RULES: Tuple[Rule, ...] = (
    PrefixRule(re.compile(r"^(?:license_|li_|(?i:lic)[-_]).+"), Kind.LICENSE, 95),
    PrefixRule(re.compile(r"^(?:access_pass_|ap_)(.+)$"), Kind.ACCESS_PASS_PRODUCT, 95, extracts_product=True),
    PrefixRule(re.compile(r"^(?:asset_|pa_|(?i:partner_asset)[-_]).+"), Kind.PARTNER_ASSET, 90),
    ShapeRule(
        re.compile(r"^[a-f\d]{24}$", re.IGNORECASE),
        asset_confidence=85,
        product_confidence=80,
        product_kind=Kind.PRODUCT,
        miss_confidence=20,
        miss_suggestion="This looks like an ObjectId but no matching product or asset was found",
    ),
    ShapeRule(
        re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE),
        asset_confidence=80,
        product_confidence=75,
        product_kind=Kind.PRODUCT,
        miss_confidence=25,
        miss_suggestion="This looks like a UUID but no matching product or asset was found",
    ),
    ShapeRule(
        re.compile(r"^[a-zA-Z0-9_-]{8,}$"),
        asset_confidence=65,
        product_confidence=60,
        product_kind=Kind.SMART_HYBRID,
        miss_confidence=30,
        miss_suggestion="Try using a license ID (license_xxx), access pass format (ap_xxx), or asset ID (asset_xxx)",
    ),
)


class RequestClassifier:
    def __init__(self, catalog: Catalog, cache: Optional[ExistenceCache] = None, rules: Sequence[Rule] = DEFAULT_RULES):
        self.catalog = catalog
        self.cache = cache
        self.rules = tuple(rules)

    def classify(self, identifier: str) -> Classification:
        identifier = (identifier or "").strip()
        for rule in self.rules:
            result = rule.apply(identifier, self)
            if result is not None:
                return result
        return Classification(Kind.UNKNOWN, 10, suggestion=FORMAT_SUGGESTION)

    def product_exists(self, product_id: str) -> bool:
        return self._exists("product", product_id, self.catalog.product_exists)

    def partner_asset_exists(self, asset_id: str) -> bool:
        return self._exists("partner_asset", asset_id, self.catalog.partner_asset_exists)

    def _exists(self, namespace: str, key: str, lookup: Callable[[str], bool]) -> bool:
        if self.cache is not None:
            cached = self.cache.get(namespace, key)
            if cached is not None:
                return cached
        try:
            exists = bool(lookup(key))
        except Exception:
            # A failing lookup counts as "not found"; classification must not raise
            logger.warning("Catalog %s lookup failed for %r", namespace, key, exc_info=True)
            return False
        if self.cache is not None:
            self.cache.set(namespace, key, exists)
        return exists
