"""HTTP middleware: session lifecycle and security headers."""

import logging
from fastapi import Request
from starlette.concurrency import run_in_threadpool

from secureblog.sessions import RequestContext

# Configure logging
logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}

NO_STORE_PREFIXES = ("/admin", "/auth", "/posts")


def build_context(request: Request, session_name: str) -> RequestContext:
    """Collect the client-identifying facts of ``request``."""
    remote_addr = request.client.host if request.client else None
    client_ip = request.headers.get("CF-Connecting-IP") or remote_addr

    forwarded_proto = request.headers.get("X-Forwarded-Proto", "")
    return RequestContext(
        client_ip=client_ip or "unknown",
        remote_addr=remote_addr or "unknown",
        user_agent=request.headers.get("User-Agent", ""),
        accept_language=request.headers.get("Accept-Language", ""),
        is_https=request.url.scheme == "https" or forwarded_proto.lower() == "https",
        session_id=request.cookies.get(session_name),
    )


def apply_security_headers(request: Request, response, is_https: bool) -> None:
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)

    if is_https:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains; preload"

    if request.url.path.startswith(NO_STORE_PREFIXES):
        response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate, max-age=0"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"


async def session_middleware(request: Request, call_next):
    """
    Attach a session to every request and persist it afterwards.

    The session and its request context are exposed as
    ``request.state.session`` and ``request.state.context``.
    """
    services = request.app.state.services
    guard = services.sessions
    context = build_context(request, services.settings.session_name)

    session = await run_in_threadpool(guard.start, context)
    request.state.context = context
    request.state.session = session

    response = await call_next(request)

    cookie = guard.cookie_params(context)
    if session.destroyed:
        response.delete_cookie(
            cookie["key"],
            path=cookie["path"],
            secure=cookie["secure"],
            httponly=cookie["httponly"],
            samesite=cookie["samesite"],
        )
    else:
        await run_in_threadpool(guard.save, session)
        response.set_cookie(value=session.id, **cookie)

    apply_security_headers(request, response, context.is_https)
    return response
