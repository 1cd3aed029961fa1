from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class FetchResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: int = Field(alias="Status")
