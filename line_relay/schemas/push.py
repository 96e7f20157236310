from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class PushRequest(BaseModel):
    """Body of an internal push call: ask the AI, push the answer to one user."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    prompt: Optional[str] = None
    system: Optional[str] = None
    model: Optional[str] = None
