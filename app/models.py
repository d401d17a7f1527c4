from __future__ import annotations

from typing import List

from pydantic import BaseModel, Field, field_validator

from app.jobs import JobSnapshot

KEYWORD_MIN_LENGTH: int = 4
KEYWORD_MAX_LENGTH: int = 32
JOB_ID_LENGTH: int = 8


class CrawlRequest(BaseModel):
    keyword: str = Field(
        ...,
        min_length=KEYWORD_MIN_LENGTH,
        max_length=KEYWORD_MAX_LENGTH,
        description="Term searched for (case-insensitive) in every crawled page.",
    )

    @field_validator("keyword")
    @classmethod
    def _keyword_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("keyword must not be blank")
        return v


class CrawlCreated(BaseModel):
    id: str


class CrawlView(BaseModel):
    id: str
    status: str
    # Crawled URLs may fail strict HttpUrl validation; keep as str
    urls: List[str] = Field(default_factory=list)

    @classmethod
    def from_snapshot(cls, job: JobSnapshot) -> "CrawlView":
        return cls(id=job.job_id, status=job.status.value.lower(), urls=sorted(job.matches))
