"""Pydantic v2 models for the JSON request and response bodies."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CompressRequest(BaseModel):
    """POST /api/compress body.

    ``blobUrl`` and ``fontUrl`` are legacy aliases for ``url``; the first
    non-empty of the three wins.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    url: str | None = None
    blob_url: str | None = Field(default=None, alias="blobUrl")
    font_url: str | None = Field(default=None, alias="fontUrl")
    text: str = ""
    charsets: list[str] = Field(default_factory=list)

    @field_validator("text", mode="before")
    @classmethod
    def text_none_is_empty(cls, v):
        return "" if v is None else v

    @field_validator("charsets", mode="before")
    @classmethod
    def charsets_none_is_empty(cls, v):
        return [] if v is None else v

    @property
    def source_url(self) -> str | None:
        for candidate in (self.url, self.blob_url, self.font_url):
            if candidate and candidate.strip():
                return candidate.strip()
        return None


class CompressResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: Literal[True] = True
    font_name: str = Field(alias="fontName")
    file_size: int = Field(alias="fileSize")
    download_url: str = Field(alias="downloadUrl")


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    error: str
    detail: str | None = None

    def to_json_dict(self) -> dict:
        return self.model_dump(exclude_none=True)


class CharsetListResponse(BaseModel):
    success: Literal[True] = True
    charsets: dict[str, list[str]]


class CharsetResponse(BaseModel):
    success: Literal[True] = True
    name: str
    characters: str
    length: int


class UploadGrantRequest(BaseModel):
    pathname: str = Field(min_length=1, max_length=512)


class UploadGrantResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: Literal[True] = True
    token: str
    pathname: str
    allowed_content_types: list[str] = Field(alias="allowedContentTypes")
    expires_at: int = Field(alias="expiresAt")
