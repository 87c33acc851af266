from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class JobStatusOut(BaseModel):
    name: str
    description: str = ""
    schedule: str
    enabled: bool
    is_running: bool
    last_run_at: Optional[str] = None
    last_status: str
    last_result: Optional[Dict[str, Any]] = None
    last_error: Optional[str] = None
    next_run_at: Optional[str] = None


class JobToggleIn(BaseModel):
    enabled: bool


class JobUpdateIn(BaseModel):
    enabled: Optional[bool] = None
    schedule: Optional[str] = Field(default=None, min_length=1, max_length=100)


class TriggerOut(BaseModel):
    name: str
    status: str
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
