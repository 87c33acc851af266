from typing import List, Optional

from pydantic import BaseModel, Field


class MonitoringSettingsUpdate(BaseModel):
    expected_checkout_time: Optional[str] = None
    reminder_after_minutes: Optional[int] = Field(default=None, ge=0)
    escalate_after_minutes: Optional[int] = Field(default=None, ge=0)
    notify_employee: Optional[bool] = None
    notify_manager: Optional[bool] = None
    notify_roles: Optional[List[str]] = None
    work_days: Optional[List[str]] = None
