from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class User(ApiModel):
    id: str
    username: str


class StoredObject(ApiModel):
    id: str
    original_name: str
    storage_name: str
    size: int
    content_type: str
    created_at: datetime


class NoteDocument(ApiModel):
    id: str
    title: str
    content: str
    last_modified: datetime
    size: int


class ShareGrant(ApiModel):
    share_id: str
    storage_name: str
    created_at: datetime
    expires_at: datetime


class LoginRequest(ApiModel):
    username: str = Field(min_length=3, max_length=20, pattern=r"^[a-zA-Z0-9_]+$")
    password: str = Field(min_length=6, max_length=128)


class LoginResponse(ApiModel):
    token: str
    user: User


class UserResponse(ApiModel):
    user: User


class NoteUpsertRequest(ApiModel):
    title: str = Field(min_length=1)
    content: str = ""


class NoteResponse(ApiModel):
    note: NoteDocument


class NoteListResponse(ApiModel):
    notes: list[NoteDocument]


class FileListResponse(ApiModel):
    files: list[StoredObject]


class ShareLinkResponse(ApiModel):
    share_link: str
    share_id: str
    expires_at: datetime


class StatusResponse(ApiModel):
    status: str = "success"
    message: str | None = None


class HealthResponse(ApiModel):
    status: str
    uptime: float
    timestamp: datetime
