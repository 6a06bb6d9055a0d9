"""Pydantic schemas for paper requests."""

from __future__ import annotations

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.murrs.constants import DOCUMENT_TYPES, LICENSES
from app.murrs.modules.papers.workflow import STATUSES

SORTS = ("relevance", "newest", "oldest", "trending", "highest-rated", "downloads", "citations", "title")


class PaperBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_none(cls, v: Any) -> Any:
        # HTML forms and query strings send "" for unset fields.
        if isinstance(v, str) and not v.strip():
            return None
        return v


class AuthorIn(PaperBaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: str | None = None
    affiliation: str | None = None


class PaperCreateRequest(PaperBaseModel):
    title: str = Field(min_length=1, max_length=500)
    abstract: str | None = None
    discipline: str | None = None
    university: str | None = None
    year: int | None = None
    document_type: str | None = None
    license: str | None = None
    file_name: str | None = None
    supervisor_id: int | None = None
    tags: list[str] | None = None
    authors: list[AuthorIn] | None = None

    @field_validator("year")
    @classmethod
    def validate_year(cls, v: int | None) -> int | None:
        if v is None:
            return v
        if v < 1900 or v > date.today().year + 1:
            raise ValueError("year is out of range")
        return v

    @field_validator("document_type")
    @classmethod
    def validate_document_type(cls, v: str | None) -> str | None:
        if v is not None and v not in DOCUMENT_TYPES:
            raise ValueError(f"must be one of: {', '.join(DOCUMENT_TYPES)}")
        return v

    @field_validator("license")
    @classmethod
    def validate_license(cls, v: str | None) -> str | None:
        if v is not None and v not in LICENSES:
            raise ValueError(f"must be one of: {', '.join(LICENSES)}")
        return v

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, v: list[str] | None) -> list[str] | None:
        if v is None:
            return v
        out: list[str] = []
        for tag in v:
            t = (tag or "").strip()
            if t and t.lower() not in {x.lower() for x in out}:
                out.append(t[:128])
        return out

    @field_validator("authors", mode="before")
    @classmethod
    def drop_blank_authors(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return v
        return [a for a in v if not (isinstance(a, dict) and not str(a.get("name") or "").strip())]


class ReviewRequest(PaperBaseModel):
    decision: Literal["approve", "revision", "reject"]
    comments: str | None = None


class PaperListQuery(PaperBaseModel):
    q: str | None = None
    discipline: str | None = None
    university: str | None = None
    year: int | None = None
    status: str | None = None
    sort: str | None = None
    skip: int = Field(default=0, ge=0)
    limit: int = Field(default=50, ge=1, le=200)
    catalog: bool | None = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str | None) -> str | None:
        if v is not None and v not in STATUSES:
            raise ValueError(f"must be one of: {', '.join(STATUSES)}")
        return v

    @field_validator("sort")
    @classmethod
    def validate_sort(cls, v: str | None) -> str | None:
        if v is not None and v not in SORTS:
            raise ValueError(f"must be one of: {', '.join(SORTS)}")
        return v
