"""Detection options — one struct shared by every strategy and the post-processing chain."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class DetectionOptions:
    """Tunable parameters for marker search and contour detection."""

    # Strategy preference order (names registered in the StrategyRegistry)
    strategy_order: list[str] = field(default_factory=lambda: ["threshold", "edge", "color"])

    # Region growing
    connectivity: int = 8
    region_grow_threshold: float = 30.0  # intensity tolerance, doubled for luma / x3.5 for RGB
    min_region_pixels: int = 100
    max_region_fraction: float = 0.9
    threshold_close_kernel: int = 5

    # Edge strategy
    blur_radius: int = 3
    edge_threshold: float = 50.0
    edge_close_kernel: int = 3
    edge_kernel_step: int = 2  # retry grows the kernel by 2 * step
    edge_min_points: int = 20
    angle_step_deg: float = 1.0
    gap_allowed_min: int = 5
    gap_allowed_max: int = 20
    continue_search_distance: int = 30
    max_border_fraction: float = 0.5

    # Color strategy
    color_threshold: float = 30.0  # percent, on the weighted HSV distance
    color_close_kernel: int = 3

    # Hull strategy
    adaptive_block_size: int = 25
    adaptive_c: float = 5.0
    threshold_levels: list[int] = field(default_factory=lambda: [50, 100, 128, 150, 200])
    hull_open_kernel: int = 3

    # Post-processing
    use_convex_hull: bool = True
    corner_threshold: float = 0.5  # radians (~28.6°)
    simplification_epsilon: float = 5.0
    smoothing_window: int = 3
    min_points: int = 10
    min_points_after: int = 20
    max_points: int = 100

    # Orchestrator
    min_area_pixels: float = 100.0
    fallback_radius_fraction: float = 0.3
    fallback_points: int = 37
    max_image_size: int = 1200
    timeout_ms: float | None = 10000.0

    # Marker search
    min_contrast: float = 0.2
    tap_search_radius: int = 50
