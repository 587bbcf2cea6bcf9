"""Color ramps and palette resolution for thematic maps."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Any, Mapping, Sequence

from .models import ConfigurationError

_LOGGER = logging.getLogger("francemap.palettes")

RAMP_LENGTH = 19
SEQUENTIAL_INDICES = (1, 4, 7, 10, 13)
QUANTIZE_POSITIONS = (0.1, 0.3, 0.5, 0.7, 0.9)
DEFAULT_DIVERGING_COLORS = 6

# 19 shades per ramp, 50 to 950, light to dark.
FULL_COLOR_SCALES: Mapping[str, tuple[str, ...]] = {
    "ambre": (
        "#F9EFE8", "#F2DFD1", "#EBD0BA", "#E4C0A4", "#DCB18E", "#D3A279", "#CA9364",
        "#C1844F", "#B7763A", "#AD6724", "#A25907", "#984B00", "#844200", "#713900",
        "#5E3000", "#4C2802", "#3A2003", "#2A1803", "#1A0F01",
    ),
    "bouteille": (
        "#EDF3E8", "#DCE6D2", "#CADABC", "#B9CEA6", "#A7C291", "#96B67C", "#85AA67",
        "#739F52", "#61933D", "#4F8726", "#3B7C06", "#257000", "#236200", "#215400",
        "#1E4601", "#1B3904", "#182C05", "#141F05", "#0C1402",
    ),
    "canard": (
        "#E5F4F2", "#CBE9E6", "#B1DEDA", "#96D3CE", "#79C8C2", "#59BDB6", "#2EB2AA",
        "#00A79F", "#009B93", "#009088", "#00847D", "#007872", "#006963", "#005A55",
        "#004B47", "#003D39", "#002F2C", "#002220", "#001513",
    ),
    "petrole": (
        "#ECF1F4", "#DAE3E9", "#C8D6DF", "#B6C8D4", "#A3BBC9", "#91AEBF", "#7FA1B5",
        "#6D94AA", "#5B88A0", "#477B96", "#326F8C", "#2E627B", "#2A566B", "#26495B",
        "#223E4C", "#1D323D", "#18272F", "#131C21", "#0C1114",
    ),
    "outremer": (
        "#F1F0FB", "#E3E1F7", "#D4D3F2", "#C6C4EE", "#B8B6EA", "#A9A8E5", "#9A9AE1",
        "#8B8DDC", "#7B7FD7", "#6B72D2", "#5966CE", "#4559C9", "#3E4EAD", "#374392",
        "#303878", "#292E60", "#212448", "#1A1A31", "#11101C",
    ),
    "amethyste": (
        "#F7EEF7", "#F0DDEF", "#E8CDE8", "#E0BCE0", "#D8ACD8", "#CF9CD0", "#C78BC8",
        "#BE7BC0", "#B56BB9", "#AC5AB1", "#A348A9", "#9A35A1", "#85308B", "#712B76",
        "#5E2662", "#4C214E", "#3A1B3B", "#281529", "#190D18",
    ),
    "fuschia": (
        "#FCEDF1", "#F8DCE3", "#F3CAD6", "#EFB9C8", "#E9A7BB", "#E496AE", "#DE84A1",
        "#D77294", "#D05F88", "#C94B7C", "#C23370", "#BA0F64", "#A11557", "#88184B",
        "#71193E", "#5A1833", "#441627", "#30121D", "#1D0C11",
    ),
}

# (negative ramp, positive ramp)
DIVERGING_PAIRS: Mapping[str, tuple[str, str]] = {
    "fuschia-canard": ("fuschia", "canard"),
    "canard-fuschia": ("canard", "fuschia"),
    "ambre-outremer": ("ambre", "outremer"),
    "outremer-ambre": ("outremer", "ambre"),
    "amethyste-bouteille": ("amethyste", "bouteille"),
    "bouteille-amethyste": ("bouteille", "amethyste"),
    "petrole-ambre": ("petrole", "ambre"),
    "ambre-petrole": ("ambre", "petrole"),
    "outremer-fuschia": ("outremer", "fuschia"),
    "fuschia-outremer": ("fuschia", "outremer"),
}

# Library scheme key -> (matplotlib colormap name, base class count, interpolated)
LIBRARY_SCHEMES: Mapping[str, tuple[str, int, bool]] = {
    "blues": ("Blues", 9, False),
    "greens": ("Greens", 9, False),
    "reds": ("Reds", 9, False),
    "oranges": ("Oranges", 9, False),
    "purples": ("Purples", 9, False),
    "greys": ("Greys", 9, False),
    "bugn": ("BuGn", 9, False),
    "bupu": ("BuPu", 9, False),
    "gnbu": ("GnBu", 9, False),
    "orrd": ("OrRd", 9, False),
    "pubu": ("PuBu", 9, False),
    "pubugn": ("PuBuGn", 9, False),
    "purd": ("PuRd", 9, False),
    "rdpu": ("RdPu", 9, False),
    "ylgn": ("YlGn", 9, False),
    "ylgnbu": ("YlGnBu", 9, False),
    "ylorbr": ("YlOrBr", 9, False),
    "ylorrd": ("YlOrRd", 9, False),
    "brbg": ("BrBG", 11, False),
    "piyg": ("PiYG", 11, False),
    "prgn": ("PRGn", 11, False),
    "rdbu": ("RdBu", 11, False),
    "rdgy": ("RdGy", 11, False),
    "rdylbu": ("RdYlBu", 11, False),
    "rdylgn": ("RdYlGn", 11, False),
    "spectral": ("Spectral", 11, False),
    "viridis": ("viridis", 8, True),
    "magma": ("magma", 8, True),
    "plasma": ("plasma", 8, True),
    "cividis": ("cividis", 8, True),
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True, slots=True)
class PaletteRegistry:
    """Read-only ramp tables handed to the resolver."""

    ramps: Mapping[str, tuple[str, ...]]
    diverging_pairs: Mapping[str, tuple[str, str]]
    library_schemes: Mapping[str, tuple[str, int, bool]]

    @classmethod
    def create(
        cls,
        *,
        ramps: Mapping[str, Sequence[str]],
        diverging_pairs: Mapping[str, tuple[str, str]],
        library_schemes: Mapping[str, tuple[str, int, bool]] | None = None,
    ) -> PaletteRegistry:
        frozen_ramps: dict[str, tuple[str, ...]] = {}
        for name, shades in ramps.items():
            if len(shades) != RAMP_LENGTH:
                raise ValueError(f"Ramp '{name}' must have {RAMP_LENGTH} shades, got {len(shades)}")
            frozen_ramps[name.casefold()] = tuple(shades)
        pairs: dict[str, tuple[str, str]] = {}
        for name, (negative, positive) in diverging_pairs.items():
            if negative.casefold() not in frozen_ramps or positive.casefold() not in frozen_ramps:
                raise ValueError(f"Diverging pair '{name}' references an unknown ramp")
            pairs[name.casefold()] = (negative.casefold(), positive.casefold())
        return cls(
            ramps=MappingProxyType(frozen_ramps),
            diverging_pairs=MappingProxyType(pairs),
            library_schemes=MappingProxyType(dict(library_schemes or {})),
        )

    def is_diverging(self, scheme_ref: str | None) -> bool:
        return scheme_ref is not None and scheme_ref.strip().casefold() in self.diverging_pairs

    def is_named_ramp(self, scheme_ref: str | None) -> bool:
        return scheme_ref is not None and scheme_ref.strip().casefold() in self.ramps

    def ramp(self, name: str) -> tuple[str, ...]:
        return self.ramps[name.strip().casefold()]


@lru_cache(maxsize=1)
def default_registry() -> PaletteRegistry:
    return PaletteRegistry.create(
        ramps=FULL_COLOR_SCALES,
        diverging_pairs=DIVERGING_PAIRS,
        library_schemes=LIBRARY_SCHEMES,
    )


@dataclass(frozen=True, slots=True)
class PaletteSampling:
    """How many colors to draw and from where.

    `count` sizes library palettes and symmetric diverging palettes;
    `num_negative`/`num_positive` split diverging palettes around the pivot;
    `indices` picks raw shades from a diverging pair (0-18 negative ramp,
    19-37 positive ramp); `positions` samples a library colormap at fixed
    points in [0, 1].
    """

    count: int | None = None
    num_negative: int | None = None
    num_positive: int | None = None
    min_index: int = 1
    max_index: int = 13
    indices: tuple[int, ...] | None = None
    positions: tuple[float, ...] | None = None


def sample_side_indices(
    count: int,
    *,
    min_index: int,
    max_index: int,
    descending: bool,
) -> tuple[int, ...]:
    """Evenly spaced ramp indices over [min_index, max_index]."""
    if count < 1:
        return ()
    span = max_index - min_index
    denom = max(1, count - 1)
    steps = range(count - 1, -1, -1) if descending else range(count)
    return tuple(round_half_up(span * step / denom) + min_index for step in steps)


class PaletteResolver:
    """Turns a scheme identifier plus sampling parameters into colors."""

    def __init__(self, registry: PaletteRegistry | None = None) -> None:
        self.registry = registry if registry is not None else default_registry()

    def resolve(
        self,
        scheme_ref: str | None,
        family: str,
        sampling: PaletteSampling | None = None,
    ) -> tuple[str, ...] | None:
        """Return the ordered palette, or None when the scheme is unknown."""
        if not scheme_ref or not scheme_ref.strip():
            return None
        sampling = sampling or PaletteSampling()
        key = scheme_ref.strip().casefold()

        if key in self.registry.diverging_pairs:
            if sampling.indices is not None:
                return self.by_indices(key, sampling.indices)
            return self._diverging(key, sampling)
        if key in self.registry.ramps:
            if family == "diverging":
                _LOGGER.debug("Sequential ramp '%s' used for a diverging scale", key)
            ramp = self.registry.ramps[key]
            return tuple(ramp[idx] for idx in SEQUENTIAL_INDICES)
        if key in self.registry.library_schemes:
            return self._library(key, sampling)
        _LOGGER.debug("No palette registered for scheme '%s'", scheme_ref)
        return None

    def by_indices(self, scheme_ref: str, indices: Sequence[int]) -> tuple[str, ...] | None:
        """Pick raw shades from a diverging pair for hand-tuned bins."""
        pair = self.registry.diverging_pairs.get(scheme_ref.strip().casefold())
        if pair is None:
            return None
        negative = self.registry.ramps[pair[0]]
        positive = self.registry.ramps[pair[1]]
        colors: list[str] = []
        for index in indices:
            if 0 <= index < RAMP_LENGTH:
                colors.append(negative[index])
            elif RAMP_LENGTH <= index < 2 * RAMP_LENGTH:
                colors.append(positive[index - RAMP_LENGTH])
            else:
                raise ConfigurationError(
                    f"Color index {index} out of range 0..{2 * RAMP_LENGTH - 1} for '{scheme_ref}'"
                )
        return tuple(colors)

    def _diverging(self, key: str, sampling: PaletteSampling) -> tuple[str, ...]:
        negative_name, positive_name = self.registry.diverging_pairs[key]
        if sampling.num_negative is not None and sampling.num_positive is not None:
            num_negative, num_positive = sampling.num_negative, sampling.num_positive
        else:
            total = sampling.count or DEFAULT_DIVERGING_COLORS
            num_negative = total // 2
            num_positive = total - num_negative
        negative = self.registry.ramps[negative_name]
        positive = self.registry.ramps[positive_name]
        neg_idx = sample_side_indices(
            num_negative,
            min_index=sampling.min_index,
            max_index=sampling.max_index,
            descending=True,
        )
        pos_idx = sample_side_indices(
            num_positive,
            min_index=sampling.min_index,
            max_index=sampling.max_index,
            descending=False,
        )
        return tuple(negative[idx] for idx in neg_idx) + tuple(positive[idx] for idx in pos_idx)

    def _library(self, key: str, sampling: PaletteSampling) -> tuple[str, ...]:
        cmap_name, base_count, interpolated = self.registry.library_schemes[key]
        if sampling.positions is not None:
            positions = tuple(sampling.positions)
        else:
            count = sampling.count or base_count
            if interpolated:
                positions = tuple((idx + 1) / count for idx in range(count))
            elif count == 1:
                positions = (0.5,)
            else:
                positions = tuple(idx / (count - 1) for idx in range(count))
        cmap, to_hex = _require_colormap(cmap_name)
        return tuple(to_hex(cmap(float(pos))) for pos in positions)


def fit_palette(colors: Sequence[str], count: int) -> tuple[str, ...]:
    """Resample an ordered palette to exactly `count` entries."""
    if count < 1 or not colors:
        return ()
    if len(colors) == count:
        return tuple(colors)
    if count == 1:
        return (colors[len(colors) // 2],)
    last = len(colors) - 1
    return tuple(colors[round_half_up(last * idx / (count - 1))] for idx in range(count))


def _require_colormap(name: str) -> tuple[Any, Any]:
    try:
        import matplotlib
        from matplotlib.colors import to_hex
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for library color schemes") from exc
    return (matplotlib.colormaps[name], to_hex)
