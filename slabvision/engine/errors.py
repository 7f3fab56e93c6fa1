"""Error kinds raised by the vision pipeline."""


class SlabVisionError(Exception):
    """Base error for the vision pipeline."""
    pass


class CalibrationError(SlabVisionError):
    """No valid coordinate system can be derived from the markers."""
    pass


class SegmentationFailure(SlabVisionError):
    """A strategy could not isolate the slab region."""
    pass


class TimeoutExceeded(SlabVisionError):
    """The time budget for a detection call ran out."""

    def __init__(self, budget_ms: float, elapsed_ms: float) -> None:
        super().__init__(f"Time budget of {budget_ms:.0f}ms exceeded after {elapsed_ms:.0f}ms")
        self.budget_ms = budget_ms
        self.elapsed_ms = elapsed_ms
