"""Data model flowing through the vision pipeline.

Markers and calibration → MarkerPoint / MarkerSet
Per-call detection output → ContourResult, DetectionReport
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray
from shapely.geometry import Polygon

from slabvision.engine.errors import CalibrationError
from slabvision.utils.geometry import polygon_area, polygon_perimeter

if TYPE_CHECKING:
    from slabvision.engine.coordinates import CoordinateSystem

# A contour shorter than this is not usable for toolpath generation.
MIN_VALID_POINTS = 10


class MarkerRole(enum.IntEnum):
    ORIGIN = 0
    X_AXIS = 1
    SCALE = 2
    TOP_RIGHT = 3


class MarkerSystem(enum.IntEnum):
    """Marker layouts, valued by how many markers they need."""

    MINIMAL = 3
    RECTANGULAR = 4

    @property
    def roles(self) -> tuple[MarkerRole, ...]:
        if self is MarkerSystem.MINIMAL:
            return (MarkerRole.ORIGIN, MarkerRole.X_AXIS, MarkerRole.SCALE)
        return (MarkerRole.ORIGIN, MarkerRole.X_AXIS, MarkerRole.SCALE, MarkerRole.TOP_RIGHT)


@dataclass(frozen=True)
class MarkerPoint:
    x: int
    y: int
    role: MarkerRole
    confidence: float = 1.0

    def __post_init__(self) -> None:
        conf = float(self.confidence)
        if math.isnan(conf):
            conf = 0.0
        object.__setattr__(self, "confidence", min(1.0, max(0.0, conf)))

    @property
    def position(self) -> tuple[float, float]:
        return (float(self.x), float(self.y))

    def distance_to(self, other: MarkerPoint) -> float:
        return math.hypot(other.x - self.x, other.y - self.y)


@dataclass(frozen=True)
class MarkerSet:
    """One marker per required role of ``system``."""

    markers: tuple[MarkerPoint, ...]
    system: MarkerSystem = MarkerSystem.RECTANGULAR

    def __post_init__(self) -> None:
        markers = tuple(self.markers)
        roles = [m.role for m in markers]
        duplicates = sorted({r.name for r in roles if roles.count(r) > 1})
        if duplicates:
            raise CalibrationError(f"Duplicate marker roles: {', '.join(duplicates)}")
        missing = [r.name for r in self.system.roles if r not in roles]
        if missing:
            raise CalibrationError(f"Missing marker roles: {', '.join(missing)}")
        extra = [r.name for r in roles if r not in self.system.roles]
        if extra:
            raise CalibrationError(
                f"Roles {', '.join(extra)} not used by the {self.system.name} marker system"
            )
        object.__setattr__(self, "markers", tuple(sorted(markers, key=lambda m: m.role)))

    def get(self, role: MarkerRole) -> MarkerPoint:
        for m in self.markers:
            if m.role == role:
                return m
        raise KeyError(role)

    @property
    def origin(self) -> MarkerPoint:
        return self.get(MarkerRole.ORIGIN)

    @property
    def x_axis(self) -> MarkerPoint:
        return self.get(MarkerRole.X_AXIS)

    @property
    def scale(self) -> MarkerPoint:
        return self.get(MarkerRole.SCALE)

    @property
    def points(self) -> NDArray[np.float64]:
        return np.array([m.position for m in self.markers], dtype=np.float64)

    @property
    def min_confidence(self) -> float:
        return min(m.confidence for m in self.markers)

    def __len__(self) -> int:
        return len(self.markers)


def _frozen(points: NDArray[np.float64]) -> NDArray[np.float64]:
    arr = np.array(points, dtype=np.float64).reshape(-1, 2)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True)
class ContourResult:
    """Detected slab outline in pixel and machine (mm) space."""

    pixel_contour: NDArray[np.float64]
    machine_contour: NDArray[np.float64]
    # Machine-space area (mm²) and closed perimeter (mm)
    area: float
    perimeter: float
    pixel_area: float
    confidence: float = 1.0
    is_fallback: bool = False
    strategy: str = ""
    failure: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "pixel_contour", _frozen(self.pixel_contour))
        object.__setattr__(self, "machine_contour", _frozen(self.machine_contour))

    @classmethod
    def build(
        cls,
        pixel_contour: NDArray[np.float64],
        coords: CoordinateSystem,
        *,
        strategy: str,
        confidence: float = 1.0,
        is_fallback: bool = False,
        failure: str | None = None,
    ) -> ContourResult:
        pixel = np.asarray(pixel_contour, dtype=np.float64).reshape(-1, 2)
        machine = coords.pixels_to_machine(pixel)
        return cls(
            pixel_contour=pixel,
            machine_contour=machine,
            area=polygon_area(machine),
            perimeter=polygon_perimeter(machine),
            pixel_area=polygon_area(pixel),
            confidence=min(1.0, max(0.0, confidence)),
            is_fallback=is_fallback,
            strategy=strategy,
            failure=failure,
        )

    @property
    def point_count(self) -> int:
        return len(self.pixel_contour)

    @property
    def is_valid(self) -> bool:
        return self.point_count >= MIN_VALID_POINTS

    @property
    def polygon(self) -> Polygon:
        """Machine-space polygon for downstream offsetting."""
        if self.point_count < 3:
            return Polygon()
        return Polygon(self.machine_contour)

    def scaled(self, factor: float, coords: CoordinateSystem) -> ContourResult:
        """Same outline with pixel coordinates multiplied by ``factor``."""
        return ContourResult.build(
            self.pixel_contour * factor,
            coords,
            strategy=self.strategy,
            confidence=self.confidence,
            is_fallback=self.is_fallback,
            failure=self.failure,
        )


@dataclass
class DetectionReport:
    """What the orchestrator tried during one detect call."""

    attempted: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    timings_ms: dict[str, float] = field(default_factory=dict)
    downscale: float = 1.0
    timed_out: bool = False
    elapsed_ms: float = 0.0
    result: ContourResult | None = None

    @property
    def used_fallback(self) -> bool:
        return self.result is not None and self.result.is_fallback
