from __future__ import annotations

import logging
import re
import uuid
from dataclasses import dataclass

from fastapi import HTTPException, UploadFile

from journaldesk.core.config import JournalConfig
from journaldesk.lib.api_client import supabase_admin

logger = logging.getLogger("journaldesk.storage")

ALLOWED_MANUSCRIPT_TYPES = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}


def ensure_bucket_exists(*, bucket: str, public: bool = False) -> None:
    """
    确保 Storage bucket 存在（开发/演示环境兜底）。

    中文注释: 正式环境用 Dashboard/migration 建桶；这里只避免“缺桶导致 500”。
    """
    storage = getattr(supabase_admin, "storage", None)
    if storage is None or not hasattr(storage, "get_bucket") or not hasattr(storage, "create_bucket"):
        return

    try:
        storage.get_bucket(bucket)
        return
    except Exception:
        pass

    try:
        storage.create_bucket(bucket, options={"public": bool(public)})
    except Exception as e:
        text = str(e).lower()
        if "already" in text or "exists" in text or "duplicate" in text:
            return
        raise


@dataclass(frozen=True)
class StoredFile:
    path: str
    url: str
    file_name: str
    content_type: str
    size: int


def _safe_name(filename: str) -> str:
    base = (filename or "manuscript").rsplit("/", 1)[-1]
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", base).strip("._")
    return cleaned or "manuscript"


def manuscript_extension(filename: str) -> str:
    name = (filename or "").lower()
    for ext in ALLOWED_MANUSCRIPT_TYPES:
        if name.endswith(ext):
            return ext
    raise HTTPException(status_code=400, detail="Only PDF, DOC and DOCX files are accepted")


async def store_manuscript(file: UploadFile, *, user_id: str, folder: str | None = None) -> StoredFile:
    """
    上传稿件到 manuscripts bucket，路径为 <user_id>/[<folder>/]<uuid>_<filename>。
    """
    journal = JournalConfig.from_env()
    ext = manuscript_extension(file.filename or "")
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(content) > journal.max_upload_mb * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"File exceeds {journal.max_upload_mb} MB")

    name = _safe_name(file.filename or f"manuscript{ext}")
    parts = [user_id] + ([folder] if folder else []) + [f"{uuid.uuid4().hex}_{name}"]
    path = "/".join(parts)
    content_type = ALLOWED_MANUSCRIPT_TYPES[ext]

    try:
        ensure_bucket_exists(bucket=journal.manuscript_bucket, public=False)
        bucket = supabase_admin.storage.from_(journal.manuscript_bucket)
        # storage3 要求 header value 为字符串
        bucket.upload(path, content, {"content-type": content_type, "upsert": "false"})
        url = bucket.get_public_url(path)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Manuscript upload failed for %s: %s", user_id, e)
        raise HTTPException(status_code=502, detail="File upload failed") from e

    return StoredFile(path=path, url=str(url), file_name=name, content_type=content_type, size=len(content))
