from typing import Any
from pydantic import BaseModel, ConfigDict, Field


class ToolLimits(BaseModel):
    """Bounds applied by the tool implementations"""
    max_batch_entries: int = Field(default=50, ge=1)
    default_query_limit: int = Field(default=20, ge=1)
    max_query_limit: int = Field(default=50, ge=1)
    summary_recent_entries: int = Field(default=5, ge=0)


class ToolContext(BaseModel):
    """Everything a tool handler needs besides its input payload"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    db: Any = Field(description="Firestore AsyncClient")
    user_id: str
    limits: ToolLimits = Field(default_factory=ToolLimits)
