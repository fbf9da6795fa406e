"""
speechsampler.config - Sampler configuration, presets and YAML profiles.

Two immutable value objects govern sampling:

- SamplerConfig: fine-grained voice activity detection (energy threshold,
  chunking, speech budget)
- AudioConfig: clip planning, retries, concurrency and backend settings

Both bound total output duration; the sampler enforces each budget
independently, so the stricter one wins.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from speechsampler.exceptions import ConfigError


class SamplerConfig(BaseModel):
    """Voice activity detection settings."""

    model_config = ConfigDict(frozen=True)

    target_speech_duration: float = Field(default=90.0, gt=0.0)
    min_segment_duration: float = Field(default=1.0, ge=0.0)
    output_sample_rate: int = Field(default=16000, gt=0)
    speech_energy_threshold: float = Field(default=0.02, ge=0.0, le=1.0)
    max_scan_duration: float = Field(default=600.0, gt=0.0)
    chunk_size: int = Field(default=4096, gt=0)
    smoothing_window: int = Field(default=5, ge=1)
    merge_gap: float = Field(default=0.5, ge=0.0)

    @classmethod
    def default(cls) -> SamplerConfig:
        """Thorough preset: ~90s of speech, fine chunking."""
        return cls(**BUILTIN_PROFILES["default"]["sampler"])

    @classmethod
    def fast(cls) -> SamplerConfig:
        """Fast preset: shorter target, coarser chunks, higher threshold."""
        return cls(**BUILTIN_PROFILES["fast"]["sampler"])


class AudioConfig(BaseModel):
    """Clip planning, retry and extraction backend settings."""

    model_config = ConfigDict(frozen=True)

    clip_duration_short: float = Field(default=45.0, gt=0.0)
    max_clips_per_video: int = Field(default=5, ge=1, le=5)
    max_total_audio_duration: float = Field(default=300.0, gt=0.0)
    short_media_threshold: float = Field(default=300.0, ge=0.0)
    near_end_offset: float = Field(default=60.0, ge=0.0)
    min_clip_duration: float = Field(default=5.0, ge=0.0)
    min_media_duration: float = Field(default=20.0, ge=0.0)

    max_retries_per_clip: int = Field(default=2, ge=0, le=5)
    retry_transient_errors: bool = True
    max_concurrent_extractions: int = Field(default=0, ge=0)

    enable_audio_separation: bool = True
    ffmpeg_path: str | None = None
    extraction_timeout: float = Field(default=120.0, gt=0.0)
    backends: tuple[str, ...] = ("ffmpeg", "builtin")

    @field_validator("backends")
    @classmethod
    def validate_backends(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        valid = {"ffmpeg", "builtin"}
        if not v:
            raise ValueError("at least one backend must be configured")
        unknown = set(v) - valid
        if unknown:
            raise ValueError(f"backends must be drawn from: {valid}")
        return v

    @classmethod
    def default(cls) -> AudioConfig:
        return cls(**BUILTIN_PROFILES["default"]["audio"])

    @classmethod
    def fast(cls) -> AudioConfig:
        return cls(**BUILTIN_PROFILES["fast"]["audio"])

    def resolved_concurrency(self) -> int:
        """Worker count for batches; 0 means auto (small, CPU-bounded)."""
        if self.max_concurrent_extractions > 0:
            return self.max_concurrent_extractions
        return max(1, min(4, os.cpu_count() or 1))


class SamplingProfile(BaseModel):
    """A named pair of sampler and audio configurations."""

    model_config = ConfigDict(frozen=True)

    name: str = "default"
    sampler: SamplerConfig = Field(default_factory=SamplerConfig)
    audio: AudioConfig = Field(default_factory=AudioConfig)


BUILTIN_PROFILES: dict[str, dict[str, Any]] = {
    "default": {
        "sampler": {
            "target_speech_duration": 90.0,
            "min_segment_duration": 1.0,
            "output_sample_rate": 16000,
            "speech_energy_threshold": 0.02,
            "max_scan_duration": 600.0,
            "chunk_size": 4096,
        },
        "audio": {
            "clip_duration_short": 45.0,
            "max_clips_per_video": 5,
            "max_total_audio_duration": 300.0,
            "max_retries_per_clip": 2,
        },
    },
    "fast": {
        "sampler": {
            "target_speech_duration": 45.0,
            "min_segment_duration": 2.0,
            "output_sample_rate": 16000,
            "speech_energy_threshold": 0.03,
            "max_scan_duration": 300.0,
            "chunk_size": 8192,
        },
        "audio": {
            "clip_duration_short": 30.0,
            "max_clips_per_video": 3,
            "max_total_audio_duration": 300.0,
            "max_retries_per_clip": 2,
        },
    },
}


def load_profile(name: str, profiles_dir: Path | None = None) -> dict[str, Any]:
    """Load a profile by name, checking custom profiles first."""
    if profiles_dir and profiles_dir.exists():
        profile_file = profiles_dir / f"{name}.yaml"
        if profile_file.exists():
            with open(profile_file) as f:
                return yaml.safe_load(f) or {}
    if name in BUILTIN_PROFILES:
        return {section: values.copy() for section, values in BUILTIN_PROFILES[name].items()}
    raise ConfigError(f"Unknown profile: {name}")


def merge_config(overrides: dict[str, Any], profile: dict[str, Any]) -> dict[str, Any]:
    """Merge config overrides onto profile defaults. Overrides take precedence."""
    merged = {key: (value.copy() if isinstance(value, dict) else value) for key, value in profile.items()}
    for key, value in overrides.items():
        if key in ("sampler", "audio") and isinstance(value, dict):
            merged.setdefault(key, {})
            merged[key].update({k: v for k, v in value.items() if v is not None})
        elif value is not None:
            merged[key] = value
    return merged


def build_profile(name: str, data: dict[str, Any]) -> SamplingProfile:
    """Validate a merged profile dict, raising ConfigError on bad values."""
    try:
        return SamplingProfile(
            name=name,
            sampler=SamplerConfig(**(data.get("sampler") or {})),
            audio=AudioConfig(**(data.get("audio") or {})),
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration for profile '{name}': {e}") from e


def load_config(config_file: Path) -> SamplingProfile:
    """Load and validate a sampling profile from a YAML file.

    The file may name a base ``profile`` and override any field under the
    ``sampler:`` and ``audio:`` sections.
    """
    if not config_file.exists():
        raise ConfigError(f"Config file not found: {config_file}")

    with open(config_file) as f:
        try:
            raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError(f"Config file {config_file} must contain a mapping")

    profile_name = raw_config.pop("profile", "default")
    profiles_dir = config_file.parent / "profiles"
    profile = load_profile(profile_name, profiles_dir if profiles_dir.exists() else None)

    if "inherits" in profile:
        parent = load_profile(profile.pop("inherits"), profiles_dir if profiles_dir.exists() else None)
        profile = merge_config(profile, parent)

    merged = merge_config(raw_config, profile)
    return build_profile(profile_name, merged)


def create_default_config(profile: str = "default") -> dict[str, Any]:
    """Create a default config dict for a profile."""
    defaults: dict[str, Any] = {"profile": profile}
    if profile in BUILTIN_PROFILES:
        defaults = merge_config(defaults, load_profile(profile))
    return defaults


def write_config(config: dict[str, Any], path: Path) -> None:
    """Write configuration to a YAML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)
