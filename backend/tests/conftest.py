import os
import sys
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import AsyncGenerator, Callable, Optional

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# 中文注释: config 在 import 时读取 APP_ENV，必须在导入 app 之前设置
os.environ.setdefault("APP_ENV", "test")
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from main import app  # noqa: E402

from journaldesk.core import mail  # noqa: E402
from journaldesk.core.session import CurrentUser, Session, get_session  # noqa: E402
from journaldesk.models.article import ArticleSubmission  # noqa: E402
from journaldesk.lib import api_client  # noqa: E402
from journaldesk.services.submission_service import SubmissionService  # noqa: E402
from tests.utils.factories import submission_payload  # noqa: E402
from tests.utils.fake_supabase import FakeSupabase  # noqa: E402

# === 全局测试配置 ===
# 中文注释:
# 1. 数据库统一替换为内存版 FakeSupabase（patch 懒加载 client 的 _client），不访问真实 Supabase。
# 2. 大部分 API 测试通过 dependency_overrides 直接注入 Session；鉴权相关测试使用真实 JWT。
# 3. 邮件 provider 一律清空，outbox 投递时只写 skipped 日志。


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for name in ("SMTP_HOST", "RESEND_API_KEY", "ADMIN_EMAILS", "SENTRY_DSN", "ORCID_CLIENT_ID", "ADMIN_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(mail, "_default_service", None)
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def fake_db(monkeypatch) -> FakeSupabase:
    db = FakeSupabase()
    monkeypatch.setattr(api_client.supabase_admin, "_client", db)
    monkeypatch.setattr(api_client.supabase, "_client", db)
    return db


@pytest_asyncio.fixture
async def client() -> AsyncGenerator:
    """
    提供一个模拟的异步测试客户端
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


def make_session(
    user_id: Optional[str] = None,
    *,
    email: Optional[str] = None,
    full_name: Optional[str] = None,
    editor: bool = False,
    reviewer: bool = False,
    admin: bool = False,
) -> Session:
    uid = user_id or str(uuid.uuid4())
    return Session(
        current_user=CurrentUser(id=uid, email=email or f"{uid[:8]}@example.com", full_name=full_name),
        is_admin=admin,
        is_editor=editor,
        is_reviewer=reviewer,
    )


@pytest.fixture
def session_factory() -> Callable[..., Session]:
    return make_session


@pytest.fixture
def login() -> Callable[[Session], Session]:
    """把后续请求的当前会话固定为给定 Session"""

    def _login(session: Session) -> Session:
        app.dependency_overrides[get_session] = lambda: session
        return session

    return _login


@pytest.fixture
def people(fake_db: FakeSupabase) -> SimpleNamespace:
    """
    预置一组用户（profiles 行 + 对应 Session）：作者、编辑、两位审稿人、管理员
    """

    def _person(full_name: str, **roles) -> Session:
        session = make_session(
            email=f"{full_name.split()[0].lower()}@example.com",
            full_name=full_name,
            editor=roles.get("editor", False),
            reviewer=roles.get("reviewer", False),
            admin=roles.get("admin", False),
        )
        fake_db.seed(
            "profiles",
            {
                "id": session.user_id,
                "email": session.current_user.email,
                "full_name": full_name,
                "is_editor": session.is_editor,
                "is_reviewer": session.is_reviewer,
                "is_admin": session.is_admin,
            },
        )
        return session

    return SimpleNamespace(
        author=_person("Amina Author"),
        editor=_person("Eli Editor", editor=True),
        reviewer=_person("Rita Reviewer", reviewer=True),
        reviewer2=_person("Ravi Reviewer", reviewer=True),
        admin=_person("Ada Admin", admin=True, editor=True, reviewer=True),
    )


def generate_test_token(
    user_id: str = "00000000-0000-0000-0000-000000000000",
    *,
    email: str = "test@example.com",
    full_name: Optional[str] = "Test User",
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """
    生成用于测试的 JWT 令牌（HS256，与 auth_utils 使用同一个 secret）
    """
    secret = os.environ.get("SUPABASE_JWT_SECRET", "mock-secret-replace-later")
    now = datetime.now(timezone.utc)
    payload = {
        "sub": user_id,
        "email": email,
        "aud": "authenticated",
        "exp": now + expires_in,
        "iat": now,
        "role": "authenticated",
        "user_metadata": {"full_name": full_name},
    }
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def auth_token() -> str:
    return generate_test_token()


@pytest.fixture
def expired_token() -> str:
    return generate_test_token(expires_in=timedelta(hours=-1))


@pytest.fixture
def token_factory() -> Callable[..., str]:
    return generate_test_token


@pytest.fixture
def submitted(fake_db: FakeSupabase, people: SimpleNamespace) -> SimpleNamespace:
    """作者已投稿（status=submitted），返回 submission / article 行"""
    result = SubmissionService().submit(people.author, ArticleSubmission(**submission_payload()))
    return SimpleNamespace(
        submission_id=result["submission_id"],
        article_id=result["article_id"],
        submission=lambda: fake_db.one("submissions", id=result["submission_id"]),
        article=lambda: fake_db.one("articles", id=result["article_id"]),
    )
