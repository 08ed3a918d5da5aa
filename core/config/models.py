"""Settings models loaded from YAML."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, model_validator


class OptimizerSettings(BaseModel):
    """Limits for the image payload optimizer.

    Quality values use Pillow's JPEG scale (1-95); 70 corresponds to 0.7.
    """

    model_config = ConfigDict(extra="forbid")

    max_area_pixels: int = Field(default=2_000_000, gt=0)
    max_width: int = Field(default=1600, gt=0)
    max_height: int = Field(default=2000, gt=0)
    max_payload_bytes: int = Field(default=4 * 1024 * 1024, gt=0)
    initial_quality: int = Field(default=70, ge=1, le=95)
    quality_step: int = Field(default=10, gt=0)
    min_quality: int = Field(default=30, ge=1, le=95)
    fallback_quality: int = Field(default=50, ge=1, le=95)

    @model_validator(mode="after")
    def _check_quality_range(self) -> OptimizerSettings:
        if self.min_quality > self.initial_quality:
            raise ValueError("min_quality must not exceed initial_quality")
        return self

    def quality_schedule(self) -> list[int]:
        """Qualities tried in order, ending exactly at the floor."""

        schedule = list(range(self.initial_quality, self.min_quality - 1, -self.quality_step))
        if schedule[-1] != self.min_quality:
            schedule.append(self.min_quality)
        return schedule

    @property
    def max_attempts(self) -> int:
        # quality ramp plus the single geometric correction
        return len(self.quality_schedule()) + 1


class HistorySettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    capacity: int = Field(default=50, gt=0)


class FallbackImageSettings(BaseModel):
    """Shape of the placeholder-image URL emitted for unresolved tokens."""

    model_config = ConfigDict(extra="forbid")

    host: str = "placehold.co"
    width: int = Field(default=800, gt=0)
    height: int = Field(default=600, gt=0)
    background: str = "1e293b"
    foreground: str = "6366f1"


class GenerationSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    endpoint: str = "https://openrouter.ai/api/v1/chat/completions"
    model: str = "openai/gpt-4o-mini"
    temperature: float = 0.1
    max_tokens: int = Field(default=6000, gt=0)
    timeout_seconds: float = Field(default=120.0, gt=0)
    default_typography: str = "Inter"


class StudioSettings(BaseModel):
    """Top-level settings document."""

    model_config = ConfigDict(extra="forbid")

    optimizer: OptimizerSettings = Field(default_factory=OptimizerSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    fallback_image: FallbackImageSettings = Field(default_factory=FallbackImageSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
