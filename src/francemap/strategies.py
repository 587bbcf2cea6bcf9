"""Join-key and value strategies selected by indicator configuration."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Mapping, Protocol

from .models import ConfigurationError, DataRow, GeoFeature


def normalize_key(raw: Any) -> str | None:
    """Uppercase and left-pad a territorial code to at least two characters.

    Idempotent: `normalize_key(normalize_key(k)) == normalize_key(k)`.
    """
    if raw is None:
        return None
    if isinstance(raw, float):
        if not math.isfinite(raw):
            return None
        if raw.is_integer():
            raw = int(raw)
    text = str(raw).strip().upper()
    if not text:
        return None
    return text.rjust(2, "0")


def parse_number(raw: Any) -> float | None:
    """Parse numbers and comma-decimal strings; anything else is None."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) else None
    text = str(raw).strip().replace(" ", "").replace(" ", "")
    if not text:
        return None
    try:
        value = float(text.replace(",", "."))
    except ValueError:
        return None
    return value if math.isfinite(value) else None


class NumberNormalizer(Protocol):
    def __call__(self, raw: Any) -> float | None: ...


class ValueExtractor(Protocol):
    def __call__(self, row: DataRow, metric: str) -> Any: ...


class RowKey(Protocol):
    def __call__(self, row: DataRow) -> str | None: ...


@dataclass(frozen=True, slots=True)
class IdentityNumber:
    """Values already numeric; strings must use a dot decimal separator."""

    def __call__(self, raw: Any) -> float | None:
        if raw is None or isinstance(raw, bool):
            return None
        if isinstance(raw, (int, float)):
            value = float(raw)
            return value if math.isfinite(value) else None
        text = str(raw).strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
        return value if math.isfinite(value) else None


@dataclass(frozen=True, slots=True)
class LocaleDecimal:
    """French-formatted decimals (`"10,5"`), optionally rescaled.

    `divisor=100` turns percentage points into proportions.
    """

    divisor: float = 1.0

    def __call__(self, raw: Any) -> float | None:
        value = parse_number(raw)
        if value is None:
            return None
        return value / self.divisor


@dataclass(frozen=True, slots=True)
class ColumnValue:
    """Reads the metric column, or a fixed column for single-metric maps."""

    column: str | None = None

    def __call__(self, row: DataRow, metric: str) -> Any:
        return row.get(self.column or metric)


@dataclass(frozen=True, slots=True)
class DerivedDifference:
    """`minuend - subtrahend` for one derived metric, column value otherwise."""

    metric: str
    minuend: str
    subtrahend: str

    def __call__(self, row: DataRow, metric: str) -> Any:
        if metric != self.metric:
            return row.get(metric)
        left = parse_number(row.get(self.minuend))
        right = parse_number(row.get(self.subtrahend))
        if left is None or right is None:
            return None
        return left - right


@dataclass(frozen=True, slots=True)
class ColumnKey:
    column: str

    def __call__(self, row: DataRow) -> str | None:
        return normalize_key(row.get(self.column))


@dataclass(frozen=True, slots=True)
class PrefixedCodeKey:
    """Codes carrying a letter prefix, e.g. academy `A02` -> `02`."""

    column: str
    prefix_length: int = 1

    def __call__(self, row: DataRow) -> str | None:
        raw = row.get(self.column)
        if raw is None:
            return None
        return normalize_key(str(raw).strip()[self.prefix_length :])


DEFAULT_FEATURE_PROPERTIES = ("INSEE_DEP", "insee_dep", "code", "DEP")
ACADEMY_FEATURE_PROPERTIES = ("code_academie", "CODE_ACADEMIE", "code")

_FEATURE_PRESETS: Mapping[str, tuple[str, ...]] = {
    "default": DEFAULT_FEATURE_PROPERTIES,
    "academy": ACADEMY_FEATURE_PROPERTIES,
}


@dataclass(frozen=True, slots=True)
class PropertyKey:
    """First non-empty candidate property of the feature, normalized."""

    candidates: tuple[str, ...] = DEFAULT_FEATURE_PROPERTIES

    @classmethod
    def named(cls, name: str) -> PropertyKey:
        preset = _FEATURE_PRESETS.get(name)
        if preset is not None:
            return cls(candidates=preset)
        return cls(candidates=(name,))

    def raw_code(self, feature: GeoFeature) -> Any:
        for prop in self.candidates:
            value = feature.properties.get(prop)
            if value is not None and str(value).strip():
                return value
        return None

    def __call__(self, feature: GeoFeature) -> str | None:
        return normalize_key(self.raw_code(feature))


def normalizer_from_mapping(raw: Mapping[str, Any] | str | None) -> NumberNormalizer:
    if raw is None:
        return LocaleDecimal()
    if isinstance(raw, str):
        raw = {"kind": raw}
    kind = str(raw.get("kind", "locale-decimal")).casefold()
    if kind == "identity":
        return IdentityNumber()
    if kind == "locale-decimal":
        divisor = raw.get("divisor", 1.0)
        if isinstance(divisor, bool) or not isinstance(divisor, (int, float)) or divisor == 0:
            raise ConfigurationError("normalizer.divisor must be a non-zero number")
        return LocaleDecimal(divisor=float(divisor))
    raise ConfigurationError(f"Unknown normalizer kind '{kind}'")


def value_extractor_from_mapping(
    raw: Mapping[str, Any] | None,
    *,
    value_column: str | None,
) -> ValueExtractor:
    if raw is None:
        return ColumnValue(column=value_column)
    kind = str(raw.get("kind", "column")).casefold()
    if kind == "column":
        return ColumnValue(column=raw.get("column", value_column))
    if kind == "difference":
        fields = {}
        for name in ("metric", "minuend", "subtrahend"):
            value = raw.get(name)
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(f"Expected non-empty string for 'value.{name}'")
            fields[name] = value.strip()
        return DerivedDifference(**fields)
    raise ConfigurationError(f"Unknown value strategy kind '{kind}'")


def row_key_from_mapping(raw: Mapping[str, Any] | None, *, column: str) -> RowKey:
    if raw is None:
        return ColumnKey(column=column)
    kind = str(raw.get("kind", "column")).casefold()
    if kind == "column":
        return ColumnKey(column=column)
    if kind == "prefixed":
        length = raw.get("prefix_length", 1)
        if isinstance(length, bool) or not isinstance(length, int) or length < 0:
            raise ConfigurationError("row_key.prefix_length must be a non-negative integer")
        return PrefixedCodeKey(column=column, prefix_length=length)
    raise ConfigurationError(f"Unknown row key kind '{kind}'")
