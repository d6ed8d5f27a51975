"""Canonical export item and the configuration used to build it."""
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


NO_TITLE = "No Title"
NO_PRICE = "N/A"
NO_DESCRIPTION = "Description non disponible"
NO_LOCATION = "Unknown"


class CanonicalItem(BaseModel):
    """Fixed-shape row consumed by the export renderer.

    Every field is a string and is always present; missing source data is
    represented by a placeholder, never by ``None``.
    """

    model_config = ConfigDict(frozen=True)

    title: str = NO_TITLE
    price: str = NO_PRICE
    description: str = NO_DESCRIPTION
    image_url: str = ""
    location: str = NO_LOCATION
    source_url: str = ""
    posted_at: str = ""


class NormalizerConfig(BaseModel):
    """Read-only pricing configuration for the record normalizer."""

    model_config = ConfigDict(frozen=True)

    local_currency: str = "MGA"
    default_currency: str = "EUR"
    min_plausible_price: Dict[str, float] = Field(default_factory=lambda: {"MGA": 1000})
    price_on_request_label: str = "Prix sur demande"
