from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from journaldesk.lib.api_client import supabase_admin
from journaldesk.lib.db_errors import http_error_from_db

logger = logging.getLogger("journaldesk.file_versions")


class FileVersionService:
    """
    稿件文件版本

    中文注释:
    - create_version 走存储过程 create_file_version：行锁 + max+1 + 唯一约束，版本号由服务端原子分配。
    - peek_next_version_number 只是“预览”，两个并发读者会看到同一个值，绝不能用作插入依据。
    """

    def __init__(self) -> None:
        self.client = supabase_admin

    def list_for_article(self, article_id: str) -> List[Dict[str, Any]]:
        res = (
            self.client.table("file_versions")
            .select("*")
            .eq("article_id", article_id)
            .order("version_number", desc=True)
            .execute()
        )
        return getattr(res, "data", None) or []

    def peek_next_version_number(self, article_id: str) -> int:
        res = (
            self.client.table("file_versions")
            .select("version_number")
            .eq("article_id", article_id)
            .order("version_number", desc=True)
            .limit(1)
            .execute()
        )
        rows = getattr(res, "data", None) or []
        return int(rows[0]["version_number"]) + 1 if rows else 1

    def create_version(
        self,
        *,
        article_id: str,
        file_url: str,
        uploaded_by: str,
        file_description: Optional[str] = None,
        file_name: Optional[str] = None,
        file_type: Optional[str] = None,
        file_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        try:
            res = self.client.rpc(
                "create_file_version",
                {
                    "p_article_id": article_id,
                    "p_file_url": file_url,
                    "p_uploaded_by": uploaded_by,
                    "p_file_description": file_description,
                    "p_file_name": file_name,
                    "p_file_type": file_type,
                    "p_file_size": file_size,
                },
            ).execute()
        except Exception as e:
            raise http_error_from_db(
                e,
                action="File version creation",
                not_found="Article not found",
                conflict="Another version was uploaded at the same time, try again",
            ) from e
        row = getattr(res, "data", None) or {}
        if isinstance(row, list):
            row = row[0] if row else {}
        logger.info("Article %s: stored version %s", article_id, row.get("version_number"))
        return row
