"""Application configuration from environment variables."""

from __future__ import annotations

import logging

from dotenv import load_dotenv
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from slabvision.engine.config import DetectionOptions
from slabvision.engine.context import MarkerSystem
from slabvision.engine.markers import MarkerDistances

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class Settings(BaseSettings):
    env: str = "development"
    log_level: str = "info"

    # Marker layout, real-world separations in mm
    marker_system: MarkerSystem = MarkerSystem.RECTANGULAR
    marker_x_distance_mm: float = 762.0
    marker_y_distance_mm: float = 762.0
    marker_scale_distance_mm: float | None = None
    anisotropic_scale: bool = False

    # Detection
    strategy_order: list[str] = ["threshold", "edge", "color"]
    timeout_ms: float = 10000.0
    max_image_size: int = 1200
    min_contrast: float = 0.2

    model_config = SettingsConfigDict(
        env_prefix="SLABVISION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if value.upper() not in _LEVELS:
            raise ValueError(f"Unknown log level: {value}")
        return value

    @field_validator("marker_system", mode="before")
    @classmethod
    def _marker_count(cls, value):
        if isinstance(value, str) and not value.isdigit():
            try:
                return MarkerSystem[value.upper()]
            except KeyError:
                raise ValueError(f"Unknown marker system: {value}") from None
        if isinstance(value, str):
            return int(value)
        return value

    @property
    def marker_distances(self) -> MarkerDistances:
        return MarkerDistances(
            x_mm=self.marker_x_distance_mm,
            y_mm=self.marker_y_distance_mm,
            scale_mm=self.marker_scale_distance_mm,
        )

    def detection_options(self) -> DetectionOptions:
        return DetectionOptions(
            strategy_order=list(self.strategy_order),
            timeout_ms=self.timeout_ms,
            max_image_size=self.max_image_size,
            min_contrast=self.min_contrast,
        )


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


def load_settings(**overrides) -> Settings:
    """Read settings from the process environment and a local .env file."""
    load_dotenv()
    return Settings(**overrides)
