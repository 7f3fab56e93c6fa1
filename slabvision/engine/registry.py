"""Strategy registry — maps strategy names to factories.

The registry is an ordinary object: build one at startup with
``create_default_registry()`` and hand it to the orchestrator.

    registry = create_default_registry()
    registry.register(StrategySpec(name="mine", kind=StrategyKind.THRESHOLD, factory=MyStrategy))
    orchestrator = ContourOrchestrator(registry, DetectionOptions(strategy_order=["mine", "edge"]))
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable

from slabvision.engine.config import DetectionOptions
from slabvision.engine.strategies import (
    ColorStrategy,
    DetectionStrategy,
    EdgeStrategy,
    HullStrategy,
    ThresholdStrategy,
)

logger = logging.getLogger(__name__)


class StrategyKind(enum.Enum):
    THRESHOLD = "threshold"
    EDGE = "edge"
    COLOR = "color"
    HULL = "hull"


@dataclass
class StrategySpec:
    name: str
    kind: StrategyKind
    factory: Callable[[DetectionOptions], DetectionStrategy]
    description: str = ""

    def create(self, options: DetectionOptions) -> DetectionStrategy:
        return self.factory(options)


class StrategyRegistry:
    """Named strategy factories, resolved in a caller-chosen preference order."""

    def __init__(self) -> None:
        self._strategies: dict[str, StrategySpec] = {}

    def register(self, spec: StrategySpec) -> None:
        if spec.name in self._strategies:
            raise ValueError(f"Duplicate strategy name: {spec.name}")
        self._strategies[spec.name] = spec
        logger.debug("Registered strategy %s (%s)", spec.name, spec.kind.value)

    def get(self, name: str) -> StrategySpec:
        return self._strategies[name]

    def all(self) -> list[StrategySpec]:
        return list(self._strategies.values())

    def names(self) -> list[str]:
        return list(self._strategies)

    def resolve(self, order: list[str]) -> list[StrategySpec]:
        """Specs for ``order``, duplicates dropped. Unknown names raise KeyError."""
        unknown = [n for n in order if n not in self._strategies]
        if unknown:
            raise KeyError(f"Unknown strategies: {', '.join(unknown)}")
        seen: set[str] = set()
        resolved: list[StrategySpec] = []
        for name in order:
            if name not in seen:
                seen.add(name)
                resolved.append(self._strategies[name])
        return resolved

    def __contains__(self, name: object) -> bool:
        return name in self._strategies

    @property
    def count(self) -> int:
        return len(self._strategies)


def create_default_registry() -> StrategyRegistry:
    """Registry holding the built-in Threshold, Edge, Color and Hull strategies."""
    registry = StrategyRegistry()
    registry.register(StrategySpec(
        name="threshold",
        kind=StrategyKind.THRESHOLD,
        factory=ThresholdStrategy,
        description="Otsu split and luminance/RGB region growing",
    ))
    registry.register(StrategySpec(
        name="edge",
        kind=StrategyKind.EDGE,
        factory=EdgeStrategy,
        description="Sobel edges with ray-cast boundary walk",
    ))
    registry.register(StrategySpec(
        name="color",
        kind=StrategyKind.COLOR,
        factory=ColorStrategy,
        description="Weighted HSV region growing",
    ))
    registry.register(StrategySpec(
        name="hull",
        kind=StrategyKind.HULL,
        factory=HullStrategy,
        description="Convex hull over adaptive and multi-level thresholds",
    ))
    return registry
