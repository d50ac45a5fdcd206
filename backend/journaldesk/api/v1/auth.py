import logging
from urllib.parse import urlencode

from fastapi import APIRouter, HTTPException, Query
from starlette.responses import RedirectResponse

from journaldesk.core.config import OrcidConfig, app_config
from journaldesk.core.password_policy import describe_violations, validate_password
from journaldesk.lib.api_client import supabase
from journaldesk.models.profile import PasswordResetRequest, SignupRequest

logger = logging.getLogger("journaldesk.auth")

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/signup", status_code=201)
async def signup(payload: SignupRequest):
    """
    注册（仅作者身份）

    中文注释:
    - 密码策略在调用 Supabase 之前校验，不合规直接 422 并返回违反的规则。
    - 注册永远不授予 editor/reviewer；这两种能力只能在 profile 中申请、由管理员审批。
    """
    violations = validate_password(payload.password, payload.full_name)
    if violations:
        raise HTTPException(
            status_code=422,
            detail={"message": "Password does not meet the policy", "rules": violations,
                    "errors": describe_violations(violations)},
        )

    try:
        res = supabase.auth.sign_up(
            {
                "email": str(payload.email),
                "password": payload.password,
                "options": {
                    "data": {"full_name": payload.full_name.strip()},
                    "email_redirect_to": f"{app_config.frontend_origin}/auth/callback",
                },
            }
        )
    except Exception as e:
        logger.warning("Signup failed for %s: %s", payload.email, e)
        raise HTTPException(status_code=400, detail="Signup failed") from e

    user = getattr(res, "user", None)
    return {
        "success": True,
        "data": {
            "user_id": getattr(user, "id", None),
            "email": str(payload.email),
            "confirmation_required": getattr(res, "session", None) is None,
        },
    }


@router.post("/password-reset")
async def password_reset(payload: PasswordResetRequest):
    """
    发送重置密码邮件

    中文注释: 无论邮箱是否存在都返回 200，避免被用来探测注册邮箱。
    """
    try:
        supabase.auth.reset_password_for_email(
            str(payload.email),
            {"redirect_to": f"{app_config.frontend_origin}/auth/reset-password"},
        )
    except Exception as e:
        logger.warning("Password reset email failed for %s: %s", payload.email, e)
    return {"success": True, "message": "If the account exists, a reset email has been sent"}


@router.get("/orcid/authorize")
async def orcid_authorize(redirect: bool = Query(False, description="true 时直接 302 跳转 ORCID")):
    cfg = OrcidConfig.from_env()
    if cfg is None:
        raise HTTPException(status_code=503, detail="ORCID login is not configured")
    query = urlencode(
        {
            "client_id": cfg.client_id,
            "response_type": "code",
            "scope": "/authenticate",
            "redirect_uri": cfg.redirect_uri,
        }
    )
    url = f"{cfg.base_url}/oauth/authorize?{query}"
    if redirect:
        return RedirectResponse(url, status_code=302)
    return {"success": True, "data": {"url": url}}
