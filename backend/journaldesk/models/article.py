from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator


class SubmissionStatus(str, Enum):
    """
    稿件生命周期状态（submissions.status 与 articles.status 共用同一套取值）

    中文注释:
    - 状态机规则集中在 allowed_next，服务层与存储过程都以此为准。
    - articles.status 由数据库触发器镜像 submissions.status，服务层不再双写。
    """

    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    REVISION_REQUESTED = "revision_requested"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    DESK_REJECTED = "desk_rejected"
    IN_PRODUCTION = "in_production"
    COPYEDITING = "copyediting"
    PROOFREADING = "proofreading"
    TYPESETTING = "typesetting"
    READY_FOR_PUBLICATION = "ready_for_publication"
    PUBLISHED = "published"

    @classmethod
    def allowed_next(cls, current: str) -> set[str]:
        """
        显性状态机：

        - draft -> submitted
        - submitted -> under_review / desk_rejected / revision_requested / rejected
        - under_review -> accepted / rejected / revision_requested
        - revision_requested -> under_review
        - accepted -> in_production / ready_for_publication / published
        - in_production -> copyediting -> proofreading -> typesetting -> ready_for_publication -> published
        - rejected / desk_rejected / published 为终态
        """
        c = normalize_status(current)
        return {s.value for s in _TRANSITIONS.get(c, ())} if c else set()

    @classmethod
    def terminal(cls) -> set[str]:
        return {cls.REJECTED.value, cls.DESK_REJECTED.value, cls.PUBLISHED.value}


S = SubmissionStatus

_TRANSITIONS: dict[str, tuple[SubmissionStatus, ...]] = {
    S.DRAFT.value: (S.SUBMITTED,),
    S.SUBMITTED.value: (S.UNDER_REVIEW, S.DESK_REJECTED, S.REVISION_REQUESTED, S.REJECTED),
    S.UNDER_REVIEW.value: (S.ACCEPTED, S.REJECTED, S.REVISION_REQUESTED),
    S.REVISION_REQUESTED.value: (S.UNDER_REVIEW,),
    # 接收后可进入完整生产流程，也可直接待发布/发布（小刊无排版环节）
    S.ACCEPTED.value: (S.IN_PRODUCTION, S.READY_FOR_PUBLICATION, S.PUBLISHED),
    S.IN_PRODUCTION.value: (S.COPYEDITING,),
    S.COPYEDITING.value: (S.PROOFREADING,),
    S.PROOFREADING.value: (S.TYPESETTING,),
    S.TYPESETTING.value: (S.READY_FOR_PUBLICATION,),
    S.READY_FOR_PUBLICATION.value: (S.PUBLISHED,),
}

PRODUCTION_STATUSES = (
    S.ACCEPTED.value,
    S.IN_PRODUCTION.value,
    S.COPYEDITING.value,
    S.PROOFREADING.value,
    S.TYPESETTING.value,
    S.READY_FOR_PUBLICATION.value,
)

PUBLICATION_STATUSES = (
    S.ACCEPTED.value,
    S.READY_FOR_PUBLICATION.value,
    S.PUBLISHED.value,
)

EDITORIAL_BUCKETS = ("submitted", "under_review", "revision_requested", "completed")

# 决策类状态必须走对应的决策动作（写 editorial_decisions / revision_requests）
DECISION_ACTIONS: dict[str, str] = {
    S.ACCEPTED.value: "approve",
    S.REJECTED.value: "reject",
    S.DESK_REJECTED.value: "desk-reject",
    S.REVISION_REQUESTED.value: "revision-request",
    S.PUBLISHED.value: "publish",
}

# 通用状态接口只接受的目标状态
GENERIC_STATUS_TARGETS = (
    S.UNDER_REVIEW.value,
    S.IN_PRODUCTION.value,
    S.COPYEDITING.value,
    S.PROOFREADING.value,
    S.TYPESETTING.value,
    S.READY_FOR_PUBLICATION.value,
)


def normalize_status(value: str | None) -> str | None:
    if value is None:
        return None
    v = str(value).strip().lower()
    if not v:
        return None
    try:
        return SubmissionStatus(v).value
    except ValueError:
        return None


def bucket_for(status: str | None) -> str | None:
    """
    编辑工作台分组：submitted / under_review / revision_requested / completed。

    中文注释: completed 汇总 accepted / rejected / desk_rejected；生产与发布阶段不进入编辑工作台。
    """
    s = normalize_status(status)
    if s in {S.SUBMITTED.value, S.UNDER_REVIEW.value, S.REVISION_REQUESTED.value}:
        return s
    if s in {S.ACCEPTED.value, S.REJECTED.value, S.DESK_REJECTED.value}:
        return "completed"
    return None


class Author(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    affiliation: Optional[str] = None
    orcid: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Author name is required")
        return v


class ArticleSubmission(BaseModel):
    """
    投稿表单

    中文注释:
    - 所有必填校验在这里完成（Pydantic 422），保证不合法表单不会触发任何数据库调用。
    - keywords 去空白、去重（保持原顺序）。
    """

    title: str = Field(..., min_length=1, max_length=500)
    abstract: str = Field(..., min_length=1)
    keywords: List[str] = Field(default_factory=list)
    authors: List[Author] = Field(..., min_length=1)
    corresponding_author_email: EmailStr
    manuscript_file_url: str = Field(..., min_length=1)
    subject_area: Optional[str] = None
    funding_info: Optional[str] = None
    conflicts_of_interest: Optional[str] = None
    cover_letter: Optional[str] = None

    @field_validator("title", "abstract", "manuscript_file_url")
    @classmethod
    def _required_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field is required")
        return v

    @field_validator("keywords")
    @classmethod
    def _clean_keywords(cls, v: List[str]) -> List[str]:
        seen: set[str] = set()
        out: List[str] = []
        for raw in v or []:
            kw = (raw or "").strip()
            if kw and kw.lower() not in seen:
                seen.add(kw.lower())
                out.append(kw)
        return out

    def article_row(self) -> dict:
        """存储过程 submit_article 的 article 入参（jsonb）"""
        return {
            "title": self.title,
            "abstract": self.abstract,
            "keywords": self.keywords,
            "authors": [a.model_dump() for a in self.authors],
            "corresponding_author_email": str(self.corresponding_author_email),
            "manuscript_file_url": self.manuscript_file_url,
            "subject_area": self.subject_area,
            "funding_info": self.funding_info,
            "conflicts_of_interest": self.conflicts_of_interest,
        }


class StatusChangeRequest(BaseModel):
    status: SubmissionStatus
    comment: Optional[str] = Field(None, max_length=5000)

    @model_validator(mode="after")
    def _strip_comment(self) -> "StatusChangeRequest":
        if self.comment is not None:
            self.comment = self.comment.strip() or None
        return self
