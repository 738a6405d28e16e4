"""
Reusable consent records and a test application

The application mirrors main.create_app but swaps host authentication for
HeaderIdentityMiddleware and exposes a few inspection routes.
"""

from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from starlette.middleware.sessions import SessionMiddleware

from cookie_consent import codec, consent_given
from cookie_consent.dependencies import require_consent
from cookie_consent.exception_handlers import register_exception_handlers
from cookie_consent.middleware.consent import ConsentMiddleware
from cookie_consent.routes import consent
from cookie_consent.schemas.consent import ConsentRecord
from cookie_consent.storage import ConsentStorage

from .mocks import HeaderIdentityMiddleware

TEST_SESSION_SECRET = "test-session-secret"


def make_record(
    policy_version: str = "v1.0",
    groups: list[str] | None = None,
    consented_at: datetime | None = None,
    expires_at: datetime | None = None,
) -> ConsentRecord:
    return ConsentRecord(
        policy_version=policy_version,
        groups=["essential", "analytics"] if groups is None else groups,
        consented_at=consented_at or datetime(2024, 1, 1, tzinfo=timezone.utc),
        expires_at=expires_at or datetime(2099, 1, 1, tzinfo=timezone.utc),
    )


def build_app(storage: ConsentStorage, skip_session_cache: bool = False) -> FastAPI:
    app = FastAPI()
    app.add_middleware(ConsentMiddleware, storage=storage, skip_session_cache=skip_session_cache)
    app.add_middleware(HeaderIdentityMiddleware, user_id_key=storage.config.user_id_key)
    app.add_middleware(SessionMiddleware, secret_key=TEST_SESSION_SECRET)

    register_exception_handlers(app)
    app.include_router(consent.router)

    @app.get("/page")
    async def page(request: Request):
        record = request.state.consent
        return {
            "consent": codec.to_dict(record) if record else None,
            "show_consent_modal": request.state.show_consent_modal,
            "analytics": consent_given(request, "analytics"),
            "essential": consent_given(request, "essential"),
        }

    @app.get("/tracked", dependencies=[Depends(require_consent)])
    async def tracked():
        return {"tracked": True}

    @app.get("/session")
    async def session_dump(request: Request):
        return dict(request.session)

    return app
