"""slabvision marker calibration and contour detection engine."""

from slabvision.engine.config import DetectionOptions
from slabvision.engine.context import ContourResult, DetectionReport, MarkerPoint, MarkerRole, MarkerSet, MarkerSystem
from slabvision.engine.coordinates import CoordinateSystem
from slabvision.engine.markers import MarkerDistances, assign_roles, calibrate, detect_markers
from slabvision.engine.orchestrator import ContourOrchestrator
from slabvision.engine.perspective import Rectification, rectify
from slabvision.engine.registry import StrategyKind, StrategyRegistry, StrategySpec, create_default_registry

__all__ = [
    "ContourOrchestrator",
    "ContourResult",
    "CoordinateSystem",
    "DetectionOptions",
    "DetectionReport",
    "MarkerDistances",
    "MarkerPoint",
    "MarkerRole",
    "MarkerSet",
    "MarkerSystem",
    "Rectification",
    "StrategyKind",
    "StrategyRegistry",
    "StrategySpec",
    "assign_roles",
    "calibrate",
    "create_default_registry",
    "detect_markers",
    "rectify",
]
