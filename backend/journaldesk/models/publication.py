from __future__ import annotations

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from journaldesk.models.article import SubmissionStatus


class PublishRequest(BaseModel):
    """
    发布元数据

    中文注释:
    - doi 为空时发布不带 DOI（可稍后补录）；格式只做轻量校验（必须以 10. 开头且含 /）。
    - page_end >= page_start；volume/issue 为正整数。
    """

    doi: Optional[str] = Field(None, max_length=255)
    volume: Optional[int] = Field(None, ge=1)
    issue: Optional[int] = Field(None, ge=1)
    page_start: Optional[int] = Field(None, ge=1)
    page_end: Optional[int] = Field(None, ge=1)
    publication_date: Optional[date] = None

    @field_validator("doi")
    @classmethod
    def _doi_shape(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            return None
        if not v.startswith("10.") or "/" not in v:
            raise ValueError("DOI must look like 10.xxxx/suffix")
        return v

    @model_validator(mode="after")
    def _pages(self) -> "PublishRequest":
        if self.page_start is not None and self.page_end is not None and self.page_end < self.page_start:
            raise ValueError("page_end must be greater than or equal to page_start")
        return self

    def article_updates(self, *, default_date: date) -> dict:
        return {
            "doi": self.doi,
            "volume": self.volume,
            "issue": self.issue,
            "page_start": self.page_start,
            "page_end": self.page_end,
            "publication_date": (self.publication_date or default_date).isoformat(),
        }

    def metadata_updates(self) -> dict:
        """
        已发布文章的元数据修正：只包含请求里显式给出的非空字段

        中文注释: 未提交的 doi / publication_date 不得被覆盖为 None 或今天。
        """
        fields = self.model_dump(exclude_unset=True, exclude_none=True)
        if "publication_date" in fields:
            fields["publication_date"] = fields["publication_date"].isoformat()
        return fields


class ProductionAdvanceRequest(BaseModel):
    status: SubmissionStatus
    comment: Optional[str] = Field(None, max_length=5000)
