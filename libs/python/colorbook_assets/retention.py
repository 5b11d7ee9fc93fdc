"""Plan-tiered retention windows for generated assets."""

from __future__ import annotations

import os
from datetime import datetime, timedelta

from pydantic import BaseModel, Field, field_validator

RETENTION_ENV_PREFIX = "ASSET_RETENTION_HOURS_"
DEFAULT_PLAN = "free"
DEFAULT_RETENTION_HOURS: dict[str, int] = {
    "free": 72,
    "pro": 720,
    "business": 2160,
}


class RetentionPolicy(BaseModel):
    """Hours an asset stays downloadable, keyed by plan."""

    hours_by_plan: dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_RETENTION_HOURS))
    default_plan: str = DEFAULT_PLAN

    class Config:
        frozen = True

    @field_validator("hours_by_plan")
    @classmethod
    def validate_hours(cls, value: dict[str, int]) -> dict[str, int]:
        if not value:
            raise ValueError("At least one retention tier is required")
        for plan, hours in value.items():
            if hours <= 0:
                raise ValueError(f"Retention for plan '{plan}' must be positive")
        return {plan.lower(): hours for plan, hours in value.items()}

    def hours_for(self, plan: str | None) -> int:
        key = (plan or self.default_plan).lower()
        if key in self.hours_by_plan:
            return self.hours_by_plan[key]
        return self.hours_by_plan.get(self.default_plan, min(self.hours_by_plan.values()))

    def expires_at(self, plan: str | None, now: datetime) -> datetime:
        return now + timedelta(hours=self.hours_for(plan))


def load_retention_policy() -> RetentionPolicy:
    """Apply ``ASSET_RETENTION_HOURS_<PLAN>`` overrides on top of the defaults."""

    hours: dict[str, object] = dict(DEFAULT_RETENTION_HOURS)
    for key, value in os.environ.items():
        if key.startswith(RETENTION_ENV_PREFIX) and value.strip():
            hours[key[len(RETENTION_ENV_PREFIX):].lower()] = value.strip()
    return RetentionPolicy(hours_by_plan=hours)
