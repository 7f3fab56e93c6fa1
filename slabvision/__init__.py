"""slabvision — marker calibration and slab contour detection."""

from slabvision.engine.context import ContourResult, MarkerPoint, MarkerRole, MarkerSet, MarkerSystem
from slabvision.engine.coordinates import CoordinateSystem
from slabvision.engine.errors import CalibrationError, SegmentationFailure, SlabVisionError, TimeoutExceeded
from slabvision.session import ScanSession
from slabvision.utils.raster import Raster

__all__ = [
    "CalibrationError",
    "ContourResult",
    "CoordinateSystem",
    "MarkerPoint",
    "MarkerRole",
    "MarkerSet",
    "MarkerSystem",
    "Raster",
    "ScanSession",
    "SegmentationFailure",
    "SlabVisionError",
    "TimeoutExceeded",
]

__version__ = "0.1.0"
