"""Record normalizer: raw provider records to canonical export items.

The provider's record schema drifts between actor versions and between
the marketplaces it aggregates. Each canonical field is therefore
resolved from an ordered list of extractors; the first extractor that
yields a usable value wins, and a field nobody can resolve falls back to
its placeholder. ``normalize`` never raises and never returns a missing
field.
"""
import re
from dataclasses import dataclass
from collections.abc import Mapping
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar
from urllib.parse import urlsplit

from ..models.item import (
    CanonicalItem,
    NormalizerConfig,
    NO_DESCRIPTION,
    NO_LOCATION,
    NO_PRICE,
    NO_TITLE,
)
from ..utils.logger import logger
from .pricing import format_price, parse_amount, parse_display_amount


T = TypeVar("T")
Extractor = Callable[[Mapping[str, Any]], Optional[T]]

# Errors an extractor may hit on malformed input; they only disqualify
# that extractor, never the record.
_EXTRACTION_ERRORS = (AttributeError, IndexError, KeyError, TypeError, ValueError, OverflowError)

DESCRIPTION_SENTINELS = frozenset({"no description"})

_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


def _walk(record: Any, keys: Sequence[Any]) -> Any:
    value = record
    for key in keys:
        if isinstance(key, int):
            if not isinstance(value, list) or len(value) <= key:
                return None
        elif not isinstance(value, Mapping):
            return None
        value = value[key] if isinstance(key, int) else value.get(key)
        if value is None:
            return None
    return value


def text_at(*keys: Any) -> Extractor[str]:
    """Extractor returning the non-blank string found at a nested path."""

    def extract(record: Mapping[str, Any]) -> Optional[str]:
        value = _walk(record, keys)
        if isinstance(value, str) and value.strip():
            return value
        return None

    extract.__name__ = "text_at(" + ".".join(str(k) for k in keys) + ")"
    return extract


def scalar_at(*keys: Any) -> Extractor[str]:
    """Like :func:`text_at` but also accepts numbers (timestamps, ids)."""
    as_text = text_at(*keys)

    def extract(record: Mapping[str, Any]) -> Optional[str]:
        value = _walk(record, keys)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return as_text(record)

    extract.__name__ = "scalar_at(" + ".".join(str(k) for k in keys) + ")"
    return extract


def first_resolved(record: Mapping[str, Any], extractors: Iterable[Extractor[T]]) -> Optional[T]:
    """Run extractors in order and return the first truthy result.

    Args:
        record: Raw provider record
        extractors: Ordered candidate extractors

    Returns:
        First usable value, or None when every extractor came up empty
    """
    for extractor in extractors:
        try:
            value = extractor(record)
        except _EXTRACTION_ERRORS as e:
            logger.debug(f"Extractor {getattr(extractor, '__name__', extractor)} skipped: {e}")
            continue
        if value:
            return value
    return None


@dataclass(frozen=True)
class FieldRule:
    """Ordered extractors plus the placeholder used when none resolves."""

    name: str
    extractors: Tuple[Extractor[str], ...]
    placeholder: str

    def resolve(self, record: Mapping[str, Any]) -> str:
        value = first_resolved(record, self.extractors)
        return value if value is not None else self.placeholder


@dataclass(frozen=True)
class ResolvedPrice:
    display: str
    amount: Optional[float] = None
    currency: Optional[str] = None


# --- location -------------------------------------------------------------


def _location_string(record: Mapping[str, Any]) -> Optional[str]:
    location = record.get("location")
    if isinstance(location, str) and location.strip():
        return location
    return None


def _city_page_name(record: Mapping[str, Any]) -> Optional[str]:
    display_name = text_at("location", "reverse_geocode", "city_page", "display_name")(record)
    if display_name is None:
        return None
    # "Antananarivo, Madagascar" -> "Antananarivo"
    return display_name.split(",")[0].strip() or None


# --- image ----------------------------------------------------------------


def complete_image_url(url: str, source_url: str = "") -> str:
    """Turn protocol-relative and site-relative image paths into absolute URLs.

    Site-relative paths are resolved against the scheme and host of
    ``source_url``; when that is not possible the path is returned as-is.
    """
    if not url or _SCHEME_RE.match(url):
        return url
    if url.startswith("//"):
        return "https:" + url
    if url.startswith("/") and source_url:
        try:
            parts = urlsplit(source_url)
        except ValueError:
            return url
        if parts.scheme and parts.netloc:
            return f"{parts.scheme}://{parts.netloc}{url}"
    return url


TITLE_RULE = FieldRule(
    "title",
    (
        text_at("marketplace_listing_title"),
        text_at("custom_title"),
        text_at("title"),
        text_at("name"),
    ),
    NO_TITLE,
)

DESCRIPTION_RULE = FieldRule(
    "description",
    (
        text_at("redacted_description", "text"),
        text_at("redacted_description"),
        text_at("description"),
    ),
    NO_DESCRIPTION,
)

IMAGE_RULE = FieldRule(
    "image_url",
    (
        text_at("primary_listing_photo", "listing_image", "uri"),
        text_at("primary_listing_photo", "image", "uri"),
        text_at("listing_photos", 0, "image", "uri"),
        text_at("imageUrl"),
        text_at("image"),
        text_at("image", "uri"),
    ),
    "",
)

LOCATION_RULE = FieldRule(
    "location",
    (
        _location_string,
        text_at("location", "reverse_geocode_detailed", "city"),
        text_at("location", "reverse_geocode", "city"),
        _city_page_name,
        text_at("lieu"),
    ),
    NO_LOCATION,
)

URL_RULE = FieldRule(
    "source_url",
    (text_at("listingUrl"), text_at("url"), text_at("link"), text_at("href")),
    "",
)

POSTED_AT_RULE = FieldRule(
    "posted_at",
    (scalar_at("postedAt"), scalar_at("date")),
    "",
)


class RecordNormalizer:
    """Converts raw provider records into :class:`CanonicalItem` rows."""

    def __init__(self, config: Optional[NormalizerConfig] = None):
        """Initialize the normalizer.

        Args:
            config: Pricing configuration. Defaults to NormalizerConfig()
        """
        self.config = config or NormalizerConfig()
        self.price_extractors: Tuple[Extractor[ResolvedPrice], ...] = (
            self._structured_price,
            self._loose_price("price"),
            self._loose_price("prix"),
        )

    def normalize(self, record: Any) -> CanonicalItem:
        """Normalize one raw record. Total: never raises.

        Args:
            record: Raw provider record (any shape, including non-dicts)

        Returns:
            Canonical item with every field populated
        """
        if not isinstance(record, Mapping):
            record = {}

        source_url = URL_RULE.resolve(record)
        image_url = complete_image_url(IMAGE_RULE.resolve(record), source_url)

        description = DESCRIPTION_RULE.resolve(record)
        if not description.strip() or description.strip().lower() in DESCRIPTION_SENTINELS:
            description = NO_DESCRIPTION

        return CanonicalItem(
            title=TITLE_RULE.resolve(record),
            price=self.resolve_price(record),
            description=description,
            image_url=image_url,
            location=LOCATION_RULE.resolve(record),
            source_url=source_url,
            posted_at=POSTED_AT_RULE.resolve(record),
        )

    def normalize_many(self, records: Iterable[Any]) -> List[CanonicalItem]:
        return [self.normalize(record) for record in records]

    def resolve_price(self, record: Mapping[str, Any]) -> str:
        """Resolve the display price, then apply the plausibility check."""
        price = first_resolved(record, self.price_extractors)
        if price is None:
            return NO_PRICE
        if self._is_implausible(price):
            return self.config.price_on_request_label
        return price.display

    def _is_implausible(self, price: ResolvedPrice) -> bool:
        if price.amount is None or not price.currency:
            return False
        threshold = self.config.min_plausible_price.get(price.currency.upper())
        return threshold is not None and price.amount < threshold

    def _structured_price(self, record: Mapping[str, Any]) -> Optional[ResolvedPrice]:
        listing_price = record.get("listing_price")
        if not isinstance(listing_price, Mapping):
            return None

        amount = parse_amount(listing_price.get("amount"))
        if amount is None or amount <= 0:
            return None

        currency = listing_price.get("currency")
        if not isinstance(currency, str) or not currency.strip():
            currency = self.config.local_currency
        currency = currency.strip().upper()
        return ResolvedPrice(format_price(amount, currency), amount, currency)

    def _loose_price(self, key: str) -> Extractor[ResolvedPrice]:
        def extract(record: Mapping[str, Any]) -> Optional[ResolvedPrice]:
            value = record.get(key)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                amount = parse_amount(value)
                if amount is None or amount <= 0:
                    return None
                currency = self.config.default_currency
                return ResolvedPrice(format_price(amount, currency), amount, currency)

            if isinstance(value, str) and value.strip():
                currency = self._currency_mentioned(value)
                amount = parse_display_amount(value) if currency else None
                return ResolvedPrice(value.strip(), amount, currency)
            return None

        extract.__name__ = f"loose_price({key})"
        return extract

    def _currency_mentioned(self, text: str) -> Optional[str]:
        upper = text.upper()
        for code in self.config.min_plausible_price:
            if re.search(rf"\b{re.escape(code.upper())}\b", upper):
                return code.upper()
        return None


def normalize_record(record: Any, config: Optional[NormalizerConfig] = None) -> CanonicalItem:
    """Convenience function to normalize a single record.

    Args:
        record: Raw provider record
        config: Optional pricing configuration

    Returns:
        Canonical item
    """
    return RecordNormalizer(config).normalize(record)
