from __future__ import annotations

from pydantic import BaseModel, Field


class JobStatusOut(BaseModel):
    name: str
    interval_s: float = Field(..., description="Seconds between scheduled runs")
    running: bool
    runs: int
    skipped_overlaps: int = Field(0, description="Ticks skipped because the previous run was still going")
    last_started_at: str | None = None
    last_finished_at: str | None = None
    last_outcome: str | None = None
    last_error: str | None = None


class TriggerResponse(BaseModel):
    job: str
    started: bool
