import re
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime
from typing import Optional, Literal

MEDIA_TYPE = re.compile(r"^[\w.+-]+/[\w.+-]+(\s*;\s*[\w.+-]+=\S+)*$")


def _validate_media_type(value: str) -> str:
    value = value.strip()
    if not value:
        return "text/plain"
    if not MEDIA_TYPE.match(value):
        raise ValueError(f"invalid media type: {value!r}")
    return value


class EntryCreate(BaseModel):
    name: str = Field(default="", max_length=512)
    source: Literal["url", "file", "text"] = "url"

    url: Optional[str] = None
    url_type: Literal["redirect", "proxy"] = "proxy"

    # base64 encoded upload
    file: Optional[str] = None
    file_type: str = ""

    text: Optional[str] = None
    text_type: str = ""

    access_expire: bool = False
    access_expire_count: int = Field(default=0, ge=0)
    blacklist: str = ""
    access_redirect_on_deny: str = Field(default="", max_length=512)

    @field_validator("file_type", "text_type")
    @classmethod
    def check_media_type(cls, value: str) -> str:
        return _validate_media_type(value)

    @field_validator("access_redirect_on_deny", "name")
    @classmethod
    def strip(cls, value: str) -> str:
        return value.strip()

    @model_validator(mode="after")
    def check_source(self):
        if self.source == "url" and not self.url:
            raise ValueError("url is required for url entries")
        if self.source == "file" and self.file is None:
            raise ValueError("file is required for file entries")
        if self.source == "text" and self.text is None:
            raise ValueError("text is required for text entries")
        return self


class EntryResponse(BaseModel):
    name: str
    url: str
    redirect: bool
    filename: str
    content_type: str
    creation: Optional[datetime]
    access_redirect_on_deny: str
    access_blacklist: str
    access_blacklist_count: int
    access_expire: bool
    access_expire_count: int
    access_count: int
    access_train: bool

    class Config:
        from_attributes = True

