from __future__ import annotations

import secrets
import string
from datetime import datetime, timezone
from typing import Optional

_DOI_ALPHABET = string.ascii_lowercase + string.digits
_SUFFIX_LENGTH = 6


def generate_doi(*, prefix: str = "10.1234", year: Optional[int] = None) -> str:
    """
    生成期刊 DOI 候选值

    规则:
    - 格式: {prefix}/journal.{year}.{6 位 [a-z0-9] 随机串}
    - year 缺省为当前 UTC 年份
    - 只是“候选值”，唯一性由 PublicationService 对 articles.doi 查重保证
    """
    if year is None:
        year = datetime.now(timezone.utc).year
    suffix = "".join(secrets.choice(_DOI_ALPHABET) for _ in range(_SUFFIX_LENGTH))
    return f"{prefix.rstrip('/')}/journal.{year}.{suffix}"
