from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ReminderTrigger(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subscription_id: str = Field(alias="subscriptionId", min_length=1)
