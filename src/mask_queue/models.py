"""Pydantic models for configuration and validation."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class CredentialsConfig(BaseModel):
    """Credential pool and rotation parameters."""

    cooldown_s: float = Field(
        default=15.0, ge=0.0, description="Minimum idle time before a credential is reused"
    )
    env_vars: List[str] = Field(
        default_factory=lambda: [
            "REPLICATE_API_TOKEN",
            "REPLICATE_API_TOKEN_2",
            "REPLICATE_API_TOKEN_3",
        ],
        description="Environment variables read for tokens (unset ones are skipped)",
    )
    tokens: List[str] = Field(
        default_factory=list, description="Explicit tokens, placed before those from env_vars"
    )


class BackoffConfig(BaseModel):
    """Adaptive inter-item delay and rate-limit retry policy."""

    initial_delay_s: float = Field(default=15.0, gt=0.0, description="Starting inter-item delay")
    min_delay_s: float = Field(default=10.0, gt=0.0, description="Floor reached by success relaxation")
    max_delay_s: float = Field(default=60.0, gt=0.0, description="Cap reached by rate-limit doubling")
    success_decrement_s: float = Field(
        default=1.0, ge=0.0, description="Delay reduction after each successful call"
    )
    max_rate_limit_retries: Optional[int] = Field(
        default=5,
        ge=0,
        description="Re-queues allowed per item before it is dead-lettered (None = unbounded)",
    )

    @field_validator("max_delay_s")
    @classmethod
    def delays_ordered(cls, v: float, info) -> float:
        """Validate min_delay_s <= initial_delay_s <= max_delay_s."""
        min_s = info.data.get("min_delay_s")
        initial_s = info.data.get("initial_delay_s")
        if min_s is not None and initial_s is not None and not min_s <= initial_s <= v:
            raise ValueError(
                f"expected min_delay_s ({min_s}) <= initial_delay_s ({initial_s}) "
                f"<= max_delay_s ({v})"
            )
        return v


class CacheConfig(BaseModel):
    """Result cache settings."""

    ttl_s: float = Field(default=86400.0, gt=0.0, description="Age after which hits are ignored")
    capacity: int = Field(default=1000, ge=1, description="Maximum number of cached masks")
    fingerprint_prefix_chars: int = Field(
        default=1000, gt=0, description="Leading characters of the encoded image to hash"
    )


class SchedulingConfig(BaseModel):
    """Processing loop settings."""

    inter_job_delay_s: float = Field(
        default=5.0, ge=0.0, description="Pause between jobs while the queue is non-empty"
    )
    crop_padding: float = Field(
        default=1.2, gt=0.0, description="Multiplier applied to the bounding box extent"
    )
    call_timeout_s: Optional[float] = Field(
        default=120.0, gt=0.0, description="Bounded wait around the external call (None = no timeout)"
    )
    default_image_width: int = Field(
        default=1024, gt=0, description="Width assumed when the caller gives no image size"
    )
    default_image_height: int = Field(
        default=1024, gt=0, description="Height assumed when the caller gives no image size"
    )


class ReplicateConfig(BaseModel):
    """Segmentation service endpoint settings."""

    base_url: str = Field(default="https://api.replicate.com/v1", description="API root")
    model: str = Field(default="meta/sam-2-large", description="Model owner/name")
    model_size: Literal["tiny", "small", "base_plus", "large"] = Field(
        default="large", description="SAM 2 variant requested from the model"
    )
    image_mime: str = Field(default="image/jpeg", description="MIME type used in the data URI")
    poll_interval_s: float = Field(
        default=1.0, gt=0.0, description="Delay between polls of a running prediction"
    )
    request_timeout_s: float = Field(default=60.0, gt=0.0, description="Per-request HTTP timeout")


class LoggingConfig(BaseModel):
    """Logging settings."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Root log level used by setup_logging()"
    )


class MaskQueueConfig(BaseModel):
    """Complete application configuration with validation."""

    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    backoff: BackoffConfig = Field(default_factory=BackoffConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    scheduling: SchedulingConfig = Field(default_factory=SchedulingConfig)
    replicate: ReplicateConfig = Field(default_factory=ReplicateConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "MaskQueueConfig":
        """Create config from nested dict (YAML)."""
        return cls(**data)

    def merge_overrides(self, overrides: dict) -> "MaskQueueConfig":
        """Apply overrides and return new config instance.

        Keys are either section names mapping to dicts of fields, or dotted
        paths such as "backoff.max_delay_s".
        """
        config_dict = self.model_dump()

        for path, value in overrides.items():
            if isinstance(value, dict) and isinstance(config_dict.get(path), dict):
                config_dict[path].update(value)
                continue

            section, _, key = path.partition(".")
            if not key or key not in config_dict.get(section, {}):
                raise KeyError(f"Unknown config override: {path}")
            config_dict[section][key] = value

        return MaskQueueConfig.from_dict(config_dict)
