"""Pydantic schemas for configuration validation."""
from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from cyan.persistence.models import DEFAULT_SECONDS_PER_TIMESTEP
from cyan.post.lineage import DecayLaw, TransformRules


class MetricsConfig(BaseModel):
    """Settings shared by the CLI commands."""

    db_path: Path | None = Field(None, description="DuckDB database with simulator output")
    sim_id: str | None = Field(None, description="Run id in hex (None selects the first run)")
    seconds_per_timestep: int = Field(
        DEFAULT_SECONDS_PER_TIMESTEP,
        description="Timestep length assumed when importing runs that do not record one",
        gt=0,
    )
    half_lives: dict[int, float] = Field(
        default_factory=dict, description="Nuclide id -> half-life in seconds"
    )
    custom_queries: dict[str, str] = Field(
        default_factory=dict, description="Command name -> SQL text for the custom command"
    )

    @field_validator("half_lives")
    @classmethod
    def half_lives_must_be_positive(cls, v: dict[int, float]) -> dict[int, float]:
        """Validate every half-life is > 0."""
        for nuc, half_life in v.items():
            if half_life <= 0:
                raise ValueError(f"half-life of {nuc} must be positive, got {half_life}")
        return v

    @field_validator("sim_id")
    @classmethod
    def sim_id_must_be_hex(cls, v: str | None) -> str | None:
        """Validate sim_id is a hex string."""
        if v:
            try:
                bytes.fromhex(v)
            except ValueError as e:
                raise ValueError(f"sim_id must be hex, got {v!r}") from e
            return v.lower()
        return v

    def transform_rules(self) -> TransformRules:
        """Lineage folding rules using the configured half-lives."""
        return TransformRules(DecayLaw(self.half_lives))
