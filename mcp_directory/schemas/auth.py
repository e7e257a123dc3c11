from typing import Literal

from pydantic import BaseModel

OAuthProvider = Literal["github", "google"]


class MeOut(BaseModel):
    id: str
    email: str | None = None
    role: str
    scopes: list[str]


class UploadOut(BaseModel):
    bucket: str
    path: str
    public_url: str
