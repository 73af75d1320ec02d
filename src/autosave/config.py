"""
Validated configuration for the autosave engine.

All models are frozen; derive variants with ``model_copy(update=...)`` or
``create_config(**overrides)``.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field, field_validator

ValidateMode = Literal["none", "payload", "all"]


class RetryConfig(BaseModel):
    """Exponential backoff for transport retries.

    Args:
        max_retries: Retries after the first attempt (attempts = max_retries + 1)
        base_delay_ms: Delay before the first retry
        max_delay_ms: Cap on any single delay
        backoff_factor: Multiplier applied per attempt
    """

    model_config = {"frozen": True}

    max_retries: int = Field(default=3, ge=0)
    base_delay_ms: float = Field(default=1000, ge=0)
    max_delay_ms: float = Field(default=10000, ge=0)
    backoff_factor: float = Field(default=2, ge=1)

    @field_validator("max_delay_ms")
    @classmethod
    def validate_max_delay(cls, v: float, info) -> float:
        """Ensure max_delay_ms >= base_delay_ms."""
        base = info.data.get("base_delay_ms", 1000)
        if v < base:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        return v

    def compute_delay(self, attempt: int) -> float:
        """Delay in ms after the given 0-indexed failed attempt."""
        return min(self.base_delay_ms * (self.backoff_factor ** attempt), self.max_delay_ms)


class UndoConfig(BaseModel):
    """Undo/redo behavior."""

    model_config = {"frozen": True}

    enabled: bool = True
    hotkeys: bool = True
    capture_in_inputs: bool = False
    max_entries: Optional[int] = Field(default=None, ge=1)


class AutosaveConfig(BaseModel):
    """Orchestrator configuration.

    Args:
        debounce_ms: Quiet period after the last change before saving
        max_retries: Transport retries; 0 disables the retry wrapper
        enable_metrics: Collect save/retry/cache counters
        enable_cache: Skip the transport for an identical payload already
            saved against the current baseline
        cache_size: Maximum cached payload results
        cache_ttl_ms: Lifetime of a cached result
        debug: Force engine logging on (True) or off (False); None follows
            the AUTOSAVE_ENV environment variable
        validate_mode: "none", "payload" (validate what is sent) or "all"
            (validate every current value)
        undo: Undo/redo settings
    """

    model_config = {"frozen": True}

    debounce_ms: float = Field(default=600, ge=0)
    max_retries: int = Field(default=3, ge=0)
    enable_metrics: bool = False
    enable_cache: bool = True
    cache_size: int = Field(default=100, ge=1)
    cache_ttl_ms: float = Field(default=300000, ge=1000)
    debug: Optional[bool] = None
    validate_mode: ValidateMode = "payload"
    undo: UndoConfig = Field(default_factory=UndoConfig)

    def retry_config(self, **overrides: Any) -> RetryConfig:
        """RetryConfig carrying this config's max_retries."""
        return RetryConfig(max_retries=self.max_retries, **overrides)


def create_config(**overrides: Any) -> AutosaveConfig:
    """Build a validated AutosaveConfig.

    ``undo`` may be given as a dict of UndoConfig fields.

    Raises:
        pydantic.ValidationError: If any value is out of range
    """
    return AutosaveConfig(**overrides)
