from typing import Any, Optional

from pydantic import BaseModel, Field

class DesignCreate(BaseModel):
    name: str = Field(min_length=1, max_length=1024)

class UploadUrlOut(BaseModel):
    url: str

class DesignOut(BaseModel):
    name: str
    urn: str

class Credentials(BaseModel):
    access_token: str
    expires_in: int

class Manifest(BaseModel):
    status: str
    progress: Optional[str] = None
    urn: Optional[str] = None
    messages: Optional[list[Any]] = None

    class Config:
        extra = "allow"

    @property
    def is_terminal(self) -> bool:
        return self.status in ("success", "failed", "timeout")
