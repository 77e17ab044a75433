"""
Configuration management for the biostream pipeline.
Loads settings from environment variables.
"""

from typing import Dict, List, Literal, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_BANDS: Dict[str, Tuple[float, float]] = {
    "delta": (0.5, 4.0),
    "theta": (4.0, 8.0),
    "alpha": (8.0, 12.0),
    "beta": (12.0, 30.0),
    "gamma": (30.0, 45.0),
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    app_name: str = "biostream"
    app_version: str = "0.1.0"
    env: Literal["development", "staging", "production"] = "development"
    debug: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    cors_allow_origins: List[str] = ["*"]
    cors_allow_credentials: bool = False

    # Sensor
    sample_rate: int = Field(default=500, gt=0)
    n_channels: int = Field(default=3, gt=0)
    adc_midpoint: float = 2048.0
    adc_full_scale: float = Field(default=4096.0, gt=0)

    # Filtering
    notch_freq: float = 50.0  # Hz (mains interference)
    notch_quality: float = 30.0
    bandpass_low: float = 0.5  # Hz
    bandpass_high: float = 45.0  # Hz
    bandpass_order: int = Field(default=4, gt=0)

    # Spectral power
    fft_size: int = Field(default=256, gt=1)
    spectral_interval: int = Field(default=5, gt=0)  # samples between computations
    band_history: int = Field(default=10, gt=0)
    bands: Dict[str, Tuple[float, float]] = Field(
        default_factory=lambda: dict(DEFAULT_BANDS)
    )

    # Heart rate
    bpm_window_seconds: float = Field(default=5.0, gt=0)
    bpm_interval: int = Field(default=500, gt=0)  # samples between computations
    bpm_smoothing_window: int = Field(default=5, gt=0)
    bpm_max_step: int = Field(default=2, gt=0)

    # Pipeline
    result_queue_size: int = Field(default=100, gt=0)

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "json"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("bands")
    @classmethod
    def _check_bands(
        cls,
        value: Dict[str, Tuple[float, float]]
    ) -> Dict[str, Tuple[float, float]]:
        for name, (low, high) in value.items():
            if low < 0 or high <= low:
                raise ValueError(f"Band {name!r} has invalid range {low}-{high} Hz")
        return value

    @property
    def bpm_window_samples(self) -> int:
        """Length of the ECG analysis window in samples."""
        return int(self.bpm_window_seconds * self.sample_rate)

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.env == "production"


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """
    Get settings instance.
    Useful for dependency injection in FastAPI.
    """
    return settings
