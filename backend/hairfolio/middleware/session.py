"""
Hairfolio Backend: Client Session Middleware
=============================================

What:  Identifies the browsing session of each request via X-Session-ID.
How:   Uses the client's header when present, otherwise generates a new ID.
       The ID is stored in request.state and a ContextVar and echoed in the
       response so the client can send it on later requests.
Who:   Designer routes (visit tracking), try-on routes (controllers).
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

SESSION_HEADER = "X-Session-ID"

session_id_var: ContextVar[str] = ContextVar("session_id", default="")

# Client-supplied IDs are keys in an in-memory registry; keep them short and plain.
_VALID_SESSION_ID = re.compile(r"^[A-Za-z0-9_-]{8,64}$")


def new_session_id() -> str:
    return uuid.uuid4().hex


class SessionMiddleware(BaseHTTPMiddleware):
    """Resolves (or issues) the X-Session-ID of each request."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        sid = request.headers.get(SESSION_HEADER, "")
        if not _VALID_SESSION_ID.match(sid):
            sid = new_session_id()
        session_id_var.set(sid)
        request.state.session_id = sid

        response = await call_next(request)
        response.headers[SESSION_HEADER] = sid
        return response
