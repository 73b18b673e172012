from typing import Optional

from pydantic import BaseModel


class IntakeRequest(BaseModel):
    sender: Optional[str] = None
    message: Optional[str] = None


class IntakeResponse(BaseModel):
    reply: str
