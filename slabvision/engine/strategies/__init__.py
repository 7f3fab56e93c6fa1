"""Segmentation strategy families."""

from slabvision.engine.strategies.base import DetectionStrategy, Segmentation
from slabvision.engine.strategies.color import ColorStrategy
from slabvision.engine.strategies.edge import EdgeStrategy
from slabvision.engine.strategies.hull import HullStrategy
from slabvision.engine.strategies.threshold import ThresholdStrategy

__all__ = [
    "ColorStrategy",
    "DetectionStrategy",
    "EdgeStrategy",
    "HullStrategy",
    "Segmentation",
    "ThresholdStrategy",
]
