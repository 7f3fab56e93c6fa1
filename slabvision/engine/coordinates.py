"""Pixel ↔ machine coordinate transform derived from calibrated markers.

Machine space is millimetres with the origin on the Origin marker, +X towards
the XAxis marker and +Y pointing away from the image's downward y axis.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from slabvision.engine.errors import CalibrationError

# Accepted mm-per-pixel range: (MIN_RATIO, MAX_RATIO].
MIN_RATIO = 0.01
MAX_RATIO = 100.0


def validate_ratio(ratio: float, label: str = "pixel-to-mm ratio") -> float:
    if not math.isfinite(ratio):
        raise CalibrationError(f"Invalid {label}: {ratio}")
    if ratio <= MIN_RATIO or ratio > MAX_RATIO:
        raise CalibrationError(
            f"Invalid {label}: {ratio:.4f} outside ({MIN_RATIO}, {MAX_RATIO}] mm/px"
        )
    return float(ratio)


@dataclass(frozen=True)
class CoordinateSystem:
    origin: tuple[float, float]
    angle: float  # radians, from atan2 of Origin→XAxis in image axes
    ratio_x: float
    ratio_y: float

    def __post_init__(self) -> None:
        validate_ratio(self.ratio_x, "X pixel-to-mm ratio")
        validate_ratio(self.ratio_y, "Y pixel-to-mm ratio")
        if not math.isfinite(self.angle):
            raise CalibrationError(f"Invalid orientation angle: {self.angle}")

    @classmethod
    def isotropic(cls, origin: tuple[float, float], angle: float, ratio: float) -> CoordinateSystem:
        return cls(origin=(float(origin[0]), float(origin[1])), angle=angle, ratio_x=ratio, ratio_y=ratio)

    @classmethod
    def identity(cls) -> CoordinateSystem:
        """1 mm per pixel, no rotation, origin at the image corner."""
        return cls.isotropic((0.0, 0.0), 0.0, 1.0)

    @property
    def ratio(self) -> float:
        return (self.ratio_x + self.ratio_y) / 2

    @property
    def is_anisotropic(self) -> bool:
        return not math.isclose(self.ratio_x, self.ratio_y)

    def pixels_to_machine(self, points: NDArray[np.float64]) -> NDArray[np.float64]:
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        c = math.cos(self.angle)
        s = math.sin(self.angle)
        px = pts[:, 0] - self.origin[0]
        py = pts[:, 1] - self.origin[1]
        # Rotate by -angle, then flip y so machine +Y points up the image
        xr = px * c + py * s
        yr = -px * s + py * c
        return np.column_stack([xr * self.ratio_x, -yr * self.ratio_y])

    def machine_to_pixels(self, points: NDArray[np.float64]) -> NDArray[np.float64]:
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        c = math.cos(self.angle)
        s = math.sin(self.angle)
        xr = pts[:, 0] / self.ratio_x
        yr = -pts[:, 1] / self.ratio_y
        px = xr * c - yr * s
        py = xr * s + yr * c
        return np.column_stack([px + self.origin[0], py + self.origin[1]])

    def pixel_to_machine(self, point: tuple[float, float]) -> tuple[float, float]:
        x, y = self.pixels_to_machine(np.array([point]))[0]
        return (float(x), float(y))

    def machine_to_pixel(self, point: tuple[float, float]) -> tuple[float, float]:
        x, y = self.machine_to_pixels(np.array([point]))[0]
        return (float(x), float(y))

    def verify_round_trip(self, points: NDArray[np.float64], tolerance: float = 1e-3) -> bool:
        """Check pixel → machine → pixel reproduces ``points`` within ``tolerance``."""
        pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        if len(pts) == 0:
            return True
        back = self.machine_to_pixels(self.pixels_to_machine(pts))
        return bool(np.max(np.abs(back - pts)) <= tolerance)
