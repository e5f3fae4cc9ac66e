from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Repository root; data/ and logs/ default to live beside the packages
ROOT_DIR: Path = Path(__file__).resolve().parent.parent


class ExtractorSettings(BaseSettings):
    """Grayscale feature extractor settings."""

    model_config = SettingsConfigDict(env_prefix="EXTRACTOR_", extra="ignore")

    # Canonical crop size every region is resampled to (D = width * height)
    canonical_width: int = Field(
        default=100,
        ge=8,
        le=512,
        description="Width in pixels of the canonical face crop.",
    )
    canonical_height: int = Field(
        default=100,
        ge=8,
        le=512,
        description="Height in pixels of the canonical face crop.",
    )
    # Ask the face locator for a crop hint before falling back to centre crop
    use_face_locator: bool = Field(
        default=True,
        description="Use the Haar cascade face locator as a crop hint when available.",
    )

    @property
    def canonical_size(self) -> Tuple[int, int]:
        return self.canonical_width, self.canonical_height

    @property
    def feature_dim(self) -> int:
        return self.canonical_width * self.canonical_height


class MatcherSettings(BaseSettings):
    """Nearest-neighbour matcher settings."""

    model_config = SettingsConfigDict(env_prefix="MATCHER_", extra="ignore")

    # Distance threshold; the bounds mirror the slider range of the capture UI
    threshold: float = Field(
        default=25.0,
        ge=5.0,
        le=100.0,
        description="Aggregate distance strictly below which a candidate is a match.",
    )
    top_k: int = Field(
        default=3,
        ge=1,
        description="Number of closest samples averaged per identity.",
    )
    metric: Literal["euclidean", "cosine"] = Field(
        default="euclidean",
        description="Pairwise distance metric between feature vectors.",
    )
    unknown_label: str = Field(
        default="Unknown",
        description="Label reported when no identity is matched.",
    )
    top_candidates: int = Field(
        default=3,
        ge=1,
        le=50,
        description="Number of ranked candidates exposed on a recognition outcome.",
    )


class SmoothingSettings(BaseSettings):
    """Live-session temporal smoothing settings."""

    model_config = SettingsConfigDict(env_prefix="SMOOTHING_", extra="ignore")

    window_size: int = Field(
        default=10,
        ge=1,
        description="Number of recent per-frame best distances averaged in live mode.",
    )


class GallerySettings(BaseSettings):
    """Gallery store / persistence settings."""

    model_config = SettingsConfigDict(env_prefix="GALLERY_", extra="ignore")

    backend: Literal["file", "memory"] = Field(
        default="file",
        description="Storage backend for the gallery blob: 'file' or 'memory'.",
    )
    store_dir: Path = Field(
        default=ROOT_DIR / "data",
        description="Directory holding the persisted gallery blob (file backend).",
    )
    store_key: str = Field(
        default="faceRecDB_v1",
        min_length=1,
        description="Fixed key under which the whole gallery state is stored.",
    )
    max_log_entries: int = Field(
        default=200,
        ge=1,
        description="Maximum number of recognition attempts retained.",
    )
    max_samples_per_session: int = Field(
        default=50,
        ge=1,
        description="Maximum number of samples captured in one enrollment session.",
    )
    stats_window: int = Field(
        default=25,
        ge=1,
        description="Number of most recent attempts used for success-rate statistics.",
    )


class LoggingSettings(BaseSettings):
    """Loguru sink configuration consumed by utils.logger.setup_from_settings."""

    model_config = SettingsConfigDict(env_prefix="LOG_", extra="ignore")

    level: Literal["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Lowest level written to any sink.",
    )
    file_path: Optional[Path] = Field(
        default=ROOT_DIR / "logs" / "vector_face_id.log",
        description="Rotating log file; empty disables the file sink.",
    )
    rotation: str = Field(
        default="10 MB",
        description="Size or age at which the log file rolls over.",
    )
    retention: str = Field(
        default="7 days",
        description="Age after which rolled-over files are deleted.",
    )
    json_logs: bool = Field(
        default=False,
        description="Serialise every record as one JSON object per line.",
    )


class Settings(BaseSettings):
    """
    Top-level configuration for the recognition system.

    Each group reads its own prefixed environment variables
    (EXTRACTOR_, MATCHER_, SMOOTHING_, GALLERY_, LOG_), e.g.
    MATCHER_THRESHOLD=30. Top-level fields may also come from a .env file
    at the repository root.
    """

    model_config = SettingsConfigDict(
        env_file=str(ROOT_DIR / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: str = Field(default="Vector Face ID", description="Application name.")
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Production disables coloured console output.",
    )

    # Groups
    extractor: ExtractorSettings = Field(default_factory=ExtractorSettings)
    matcher: MatcherSettings = Field(default_factory=MatcherSettings)
    smoothing: SmoothingSettings = Field(default_factory=SmoothingSettings)
    gallery: GallerySettings = Field(default_factory=GallerySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


settings = Settings()
