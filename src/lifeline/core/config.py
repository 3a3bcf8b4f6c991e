"""Import options — explicit dict > env > defaults."""

from __future__ import annotations

import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from lifeline.core.models import DEFAULT_LAYER, Layer
from lifeline.dates import DATE_ORDERS, DateOptions
from lifeline.layers import Classification, classify_fields
from lifeline.validation import MAX_ITEM_BYTES


@dataclass
class ImportOptions:
    """Caller-supplied options for one import run.

    The same inputs with the same options always yield the same events, so
    everything that can influence a parse lives here.

    Environment variables:
    - LIFELINE_DATE_ORDER: "MDY" or "DMY" for slash dates
    - LIFELINE_MAX_ITEM_BYTES: per-item size ceiling
    - LIFELINE_CONCURRENCY: worker threads
    - LIFELINE_USER_ID: owner stamped on every event
    """

    date_order: str = "MDY"
    custom_keywords: dict[str, list[str]] = field(default_factory=dict)
    min_layer_score: int = 1
    max_item_bytes: int = MAX_ITEM_BYTES
    user_id: str | None = None
    concurrency: int = 1

    def __post_init__(self):
        if self.date_order not in DATE_ORDERS:
            raise ValueError(f"date_order must be one of {DATE_ORDERS}, got {self.date_order!r}")
        if self.max_item_bytes <= 0:
            raise ValueError("max_item_bytes must be positive")
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1")

    @classmethod
    def from_dict(cls, data: dict | None = None) -> ImportOptions:
        """Create ImportOptions from a dict, applying env var overrides.

        Config precedence: explicit dict values > env vars > class defaults.
        """
        data = data or {}
        values: dict = {}

        env_date_order = os.environ.get("LIFELINE_DATE_ORDER")
        if env_date_order:
            values["date_order"] = env_date_order.strip().upper()
        env_max_bytes = os.environ.get("LIFELINE_MAX_ITEM_BYTES")
        if env_max_bytes:
            values["max_item_bytes"] = int(env_max_bytes)
        env_concurrency = os.environ.get("LIFELINE_CONCURRENCY")
        if env_concurrency:
            values["concurrency"] = int(env_concurrency)
        env_user = os.environ.get("LIFELINE_USER_ID")
        if env_user:
            values["user_id"] = env_user

        for key in ("date_order", "min_layer_score", "max_item_bytes", "user_id", "concurrency"):
            if key in data and data[key] is not None:
                values[key] = data[key]
        if "custom_keywords" in data and data["custom_keywords"]:
            values["custom_keywords"] = normalize_keywords(data["custom_keywords"])

        if isinstance(values.get("date_order"), str):
            values["date_order"] = values["date_order"].upper()
        return cls(**values)

    @property
    def date_options(self) -> DateOptions:
        return DateOptions(date_order=self.date_order)

    def classify(
        self,
        *,
        title: str | None = None,
        description: str | None = None,
        location: str | None = None,
        extra: Iterable[str | None] = (),
        has_location: bool | None = None,
    ) -> Classification:
        """Classify structured fields with this run's keywords and threshold."""
        return classify_fields(
            title=title,
            description=description,
            location=location,
            extra=extra,
            has_location=has_location,
            extra_keywords=self.custom_keywords or None,
            min_score=self.min_layer_score,
            default=DEFAULT_LAYER,
        )


def normalize_keywords(data: Mapping) -> dict[str, list[str]]:
    """Validate a layer -> keywords mapping.

    Raises ValueError for unknown layer names or non-list values.
    """
    if not isinstance(data, Mapping):
        raise ValueError("custom keywords must be a mapping of layer name to keyword list")
    result: dict[str, list[str]] = {}
    for key, words in data.items():
        layer = Layer.parse(str(key))
        if layer is None:
            raise ValueError(f"Unknown layer in custom keywords: {key!r}")
        if isinstance(words, str):
            words = [words]
        if not isinstance(words, list):
            raise ValueError(f"Keywords for {layer.value} must be a list")
        result.setdefault(layer.value, []).extend(str(w) for w in words if str(w).strip())
    return result


def load_keywords_file(path: str | Path) -> dict[str, list[str]]:
    """Load custom classifier keywords from a YAML file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return normalize_keywords(data)
