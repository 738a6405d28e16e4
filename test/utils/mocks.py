"""
Mock collaborators and request builders for consent tests

Provides:
- In-memory, failing and unreachable consent repositories
- A header-driven identity middleware standing in for host authentication
- Starlette Request construction without a running server
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from cookie_consent.exceptions import ConsentStoreError


class InMemoryConsentRepository:
    """Dictionary-backed repository that remembers every save."""

    def __init__(self, records: dict | None = None):
        self.records = {str(key): value for key, value in (records or {}).items()}
        self.saved = []
        self.loads = []

    async def load_by_identity(self, identity):
        self.loads.append(str(identity))
        return self.records.get(str(identity))

    async def save(self, identity, record):
        self.records[str(identity)] = record
        self.saved.append((str(identity), record))

    def clear(self):
        self.records.clear()
        self.saved.clear()
        self.loads.clear()


class FailingConsentRepository:
    """Repository whose backing store is always down."""

    async def load_by_identity(self, identity):
        raise ConsentStoreError("connection refused", operation="load")

    async def save(self, identity, record):
        raise ConsentStoreError("connection refused", operation="save")


class UnreachableConsentRepository:
    """Repository whose client raises its own errors instead of ConsentStoreError."""

    async def load_by_identity(self, identity):
        raise OSError("network is unreachable")

    async def save(self, identity, record):
        raise OSError("network is unreachable")


class HeaderIdentityMiddleware(BaseHTTPMiddleware):
    """Marks the request as identified when an X-User-Id header is sent."""

    def __init__(self, app, user_id_key: str = "current_user_id"):
        super().__init__(app)
        self.user_id_key = user_id_key

    async def dispatch(self, request, call_next):
        user_id = request.headers.get("X-User-Id")
        if user_id:
            setattr(request.state, self.user_id_key, user_id)
        return await call_next(request)


def make_request(
    cookies: dict[str, str] | None = None,
    session: dict | None = None,
    state: dict | None = None,
    scheme: str = "http",
) -> Request:
    """
    Build a bare Starlette Request.

    Pass ``session=None`` to simulate an app without SessionMiddleware.
    """
    headers = []
    if cookies:
        cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        headers.append((b"cookie", cookie_header.encode("latin-1")))

    scope = {
        "type": "http",
        "method": "GET",
        "scheme": scheme,
        "server": ("testserver", 443 if scheme == "https" else 80),
        "path": "/",
        "root_path": "",
        "query_string": b"",
        "headers": headers,
        "state": dict(state or {}),
    }
    if session is not None:
        scope["session"] = session
    return Request(scope)
