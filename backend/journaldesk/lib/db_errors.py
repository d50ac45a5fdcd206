from __future__ import annotations

import logging

from fastapi import HTTPException
from postgrest.exceptions import APIError

logger = logging.getLogger("journaldesk.db")

# Postgres SQLSTATE 取值（存储过程通过 raise ... using errcode 返回）
NOT_FOUND = "P0002"
CONCURRENT_CHANGE = "40001"
UNIQUE_VIOLATION = "23505"


def error_code(err: Exception) -> str:
    """
    从 postgrest APIError 中取 SQLSTATE。

    中文注释: 不同版本的 APIError 字段不完全一致，code 缺失时从字符串兜底解析。
    """
    if not isinstance(err, APIError):
        return ""
    code = str(getattr(err, "code", "") or "").strip().upper()
    if code:
        return code
    text = str(err).upper()
    for candidate in (NOT_FOUND, CONCURRENT_CHANGE, UNIQUE_VIOLATION):
        if candidate in text:
            return candidate
    return ""


def is_unique_violation(err: Exception) -> bool:
    return error_code(err) == UNIQUE_VIOLATION


def http_error_from_db(
    err: Exception,
    *,
    action: str,
    not_found: str = "Not found",
    conflict: str = "The record was changed by someone else, reload and try again",
) -> HTTPException:
    """把存储过程/PostgREST 异常映射为 HTTPException（调用方负责 raise ... from err）"""
    if isinstance(err, HTTPException):
        return err
    code = error_code(err)
    if code == NOT_FOUND:
        return HTTPException(status_code=404, detail=not_found)
    if code in {CONCURRENT_CHANGE, UNIQUE_VIOLATION}:
        return HTTPException(status_code=409, detail=conflict)
    logger.error("%s failed: %s", action, err)
    return HTTPException(status_code=502, detail=f"{action} failed")
