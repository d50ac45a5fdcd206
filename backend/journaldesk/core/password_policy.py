from __future__ import annotations

from typing import List, Optional

MIN_PASSWORD_LENGTH = 9

# 规则 key -> 前端可直接展示的提示文案
PASSWORD_RULES = {
    "min_length": f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
    "letter": "Password must contain at least one letter",
    "symbol": "Password must contain at least one symbol",
    "not_numeric": "Password cannot be entirely numeric",
    "contains_name": "Password cannot contain your full name",
}


def _has_symbol(password: str) -> bool:
    return any(not ch.isalnum() and not ch.isspace() for ch in password)


def validate_password(password: str, full_name: Optional[str] = None) -> List[str]:
    """
    注册密码策略校验，返回违反的规则 key 列表（空列表即通过）。

    中文注释:
    - 长度 >= 9、至少一个字母、至少一个符号、不能是纯数字；
    - 不能包含用户全名（大小写不敏感的子串匹配，全名为空时跳过该规则）。
    """
    password = password or ""
    violations: List[str] = []

    if len(password) < MIN_PASSWORD_LENGTH:
        violations.append("min_length")
    if not any(ch.isalpha() for ch in password):
        violations.append("letter")
    if not _has_symbol(password):
        violations.append("symbol")
    if password.isdigit():
        violations.append("not_numeric")

    name = (full_name or "").strip().lower()
    if name and name in password.lower():
        violations.append("contains_name")

    return violations


def describe_violations(violations: List[str]) -> List[str]:
    return [PASSWORD_RULES[v] for v in violations if v in PASSWORD_RULES]
