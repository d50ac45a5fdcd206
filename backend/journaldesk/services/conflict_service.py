from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Set

from journaldesk.lib.api_client import supabase_admin

logger = logging.getLogger("journaldesk.conflicts")

RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"

CONFLICT_AUTHOR = "Reviewer is an author"
CONFLICT_DOMAIN = "Same institutional email domain"
CONFLICT_PREVIOUS = "Previously reviewed work by same authors"


def _rows(res: Any) -> List[Dict[str, Any]]:
    return getattr(res, "data", None) or []


def _email(value: Any) -> Optional[str]:
    v = str(value or "").strip().lower()
    return v or None


def _domain(email: Optional[str]) -> Optional[str]:
    if not email or "@" not in email:
        return None
    return email.rsplit("@", 1)[1] or None


def _affiliation_words(value: Any) -> Set[str]:
    return {w for w in re.split(r"\s+", str(value or "").lower()) if len(w) > 3}


def author_emails(authors: Iterable[Dict[str, Any]]) -> Set[str]:
    return {e for e in (_email(a.get("email")) for a in authors or []) if e}


def assess_reviewer(
    reviewer: Dict[str, Any],
    authors: List[Dict[str, Any]],
    *,
    previously_reviewed_emails: Iterable[str] = (),
) -> Dict[str, Any]:
    """
    单个审稿人的利益冲突评估。

    中文注释:
    - 审稿人邮箱就是作者邮箱 / 与作者同一邮箱域名 -> high；
    - 单位名称有 >=2 个相同的长词 / 审过同一批作者的稿件 -> medium；
    - 其余为 low。只有“审稿人是作者”会在分配时被硬性拒绝，其余仅提示编辑。
    """
    conflicts: List[str] = []
    risk = RISK_LOW

    email = _email(reviewer.get("email"))
    emails = author_emails(authors)
    domains = {_domain(e) for e in emails} - {None}

    if email and email in emails:
        conflicts.append(CONFLICT_AUTHOR)
        risk = RISK_HIGH
    if _domain(email) in domains:
        conflicts.append(CONFLICT_DOMAIN)
        risk = RISK_HIGH

    reviewer_words = _affiliation_words(reviewer.get("affiliation"))
    if reviewer_words:
        for author in authors or []:
            if len(reviewer_words & _affiliation_words(author.get("affiliation"))) >= 2:
                conflicts.append(f"Similar affiliation to {author.get('name') or 'an author'}")
                if risk == RISK_LOW:
                    risk = RISK_MEDIUM

    if emails & {e for e in (_email(x) for x in previously_reviewed_emails) if e}:
        conflicts.append(CONFLICT_PREVIOUS)
        if risk == RISK_LOW:
            risk = RISK_MEDIUM

    return {"conflicts": conflicts, "risk_level": risk}


class ConflictService:
    """按稿件批量评估候选审稿人的利益冲突"""

    def __init__(self) -> None:
        self.client = supabase_admin

    def _previous_author_emails(self, reviewer_ids: List[str], exclude_submission_id: str) -> Dict[str, Set[str]]:
        """reviewer_id -> 其审过的其他稿件的作者邮箱集合"""
        out: Dict[str, Set[str]] = {rid: set() for rid in reviewer_ids}
        if not reviewer_ids:
            return out
        reviews = _rows(
            self.client.table("reviews").select("reviewer_id, submission_id").in_("reviewer_id", reviewer_ids).execute()
        )
        reviews = [r for r in reviews if str(r.get("submission_id")) != str(exclude_submission_id)]
        submission_ids = list({str(r["submission_id"]) for r in reviews})
        if not submission_ids:
            return out

        subs = _rows(self.client.table("submissions").select("id, article_id").in_("id", submission_ids).execute())
        article_of = {str(s["id"]): str(s["article_id"]) for s in subs}
        arts = _rows(
            self.client.table("articles").select("id, authors").in_("id", list(set(article_of.values()))).execute()
        )
        emails_of = {str(a["id"]): author_emails(a.get("authors") or []) for a in arts}

        for r in reviews:
            article_id = article_of.get(str(r["submission_id"]))
            out.setdefault(str(r["reviewer_id"]), set()).update(emails_of.get(article_id or "", set()))
        return out

    def check(self, reviewers: List[Dict[str, Any]], submission_id: str, authors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        previous = self._previous_author_emails([str(r["id"]) for r in reviewers], submission_id)
        checked = []
        for reviewer in reviewers:
            result = assess_reviewer(reviewer, authors, previously_reviewed_emails=previous.get(str(reviewer["id"]), ()))
            checked.append({**reviewer, **result})
        flagged = sum(1 for c in checked if c["risk_level"] != RISK_LOW)
        logger.info("Submission %s: %s of %s reviewer(s) flagged for conflicts", submission_id, flagged, len(checked))
        return checked
