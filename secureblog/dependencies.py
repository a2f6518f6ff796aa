"""Service construction and FastAPI dependencies."""

import time
import logging
from dataclasses import dataclass
from typing import Callable, Optional
from fastapi import Depends, HTTPException, Request, status

from secureblog.config import Settings
from secureblog.csrf import CsrfGuard
from secureblog.exceptions import CsrfError
from secureblog.passwords import PasswordVault
from secureblog.rate_limit import LoginThrottle, RateLimiter
from secureblog.sanitizer import InputSanitizer
from secureblog.security_log import SecurityLog
from secureblog.sessions import RequestContext, Session, SessionGuard, SessionStore
from secureblog.storage import PostStore
from secureblog.taxonomy import TaxonomyStore
from secureblog.uploads import UploadGuard
from secureblog.users import UserStore

# Configure logging
logger = logging.getLogger(__name__)

CSRF_HEADER = "X-CSRF-Token"


@dataclass
class Services:
    """Every core service, built once per application."""

    settings: Settings
    security_log: SecurityLog
    sanitizer: InputSanitizer
    vault: PasswordVault
    rate_limiter: RateLimiter
    throttle: LoginThrottle
    csrf: CsrfGuard
    users: UserStore
    sessions: SessionGuard
    taxonomy: TaxonomyStore
    posts: PostStore
    uploads: UploadGuard


def build_services(settings: Settings, clock: Callable[[], float] = time.time) -> Services:
    """
    Wire the core services together for ``settings``.

    Args:
        settings: Runtime settings
        clock: Time source shared by every service

    Returns:
        Services: The constructed services
    """
    security_log = SecurityLog(settings.logs_dir, clock=clock)
    sanitizer = InputSanitizer(settings.allowed_html_tags)
    vault = PasswordVault.from_settings(settings)
    rate_limiter = RateLimiter(settings.sessions_dir, security_log=security_log, clock=clock)
    throttle = LoginThrottle(
        settings.sessions_dir,
        max_attempts=settings.max_login_attempts,
        lockout_time=settings.login_lockout_time,
        security_log=security_log,
        clock=clock,
    )
    csrf = CsrfGuard(
        token_length=settings.csrf_token_length,
        lifetime=settings.csrf_token_lifetime,
        security_log=security_log,
        clock=clock,
    )
    users = UserStore(
        settings.users_dir,
        vault,
        password_min_length=settings.password_min_length,
        primary_admin=settings.admin_username,
        security_log=security_log,
        clock=clock,
    )
    sessions = SessionGuard(
        settings,
        SessionStore(settings.sessions_dir, clock=clock),
        vault,
        throttle,
        users,
        security_log=security_log,
        clock=clock,
    )
    taxonomy = TaxonomyStore(settings.taxonomy_file)
    posts = PostStore(settings, sanitizer, vault, taxonomy, security_log=security_log, clock=clock)
    uploads = UploadGuard(settings, sanitizer, security_log=security_log, clock=clock)

    return Services(
        settings=settings,
        security_log=security_log,
        sanitizer=sanitizer,
        vault=vault,
        rate_limiter=rate_limiter,
        throttle=throttle,
        csrf=csrf,
        users=users,
        sessions=sessions,
        taxonomy=taxonomy,
        posts=posts,
        uploads=uploads,
    )


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_context(request: Request) -> RequestContext:
    return request.state.context


def get_session(request: Request) -> Session:
    return request.state.session


def is_authenticated(
    session: Session = Depends(get_session),
    context: RequestContext = Depends(get_context),
    services: Services = Depends(get_services),
) -> bool:
    return services.sessions.is_authenticated(session, context)


def require_user(
    session: Session = Depends(get_session),
    context: RequestContext = Depends(get_context),
    services: Services = Depends(get_services),
) -> Session:
    """
    Dependency that admits only authenticated sessions.

    Returns:
        Session: The authenticated session

    Raises:
        HTTPException: If the session is not authenticated
    """
    if not services.sessions.is_authenticated(session, context):
        logger.warning("Unauthenticated request to protected endpoint")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )
    return session


def require_admin(session: Session = Depends(require_user)) -> Session:
    """
    Dependency that admits only administrators.

    Raises:
        HTTPException: If the user is not an administrator
    """
    if session.role != "admin":
        logger.warning(f"Non-admin access attempt by: {session.username}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required"
        )
    return session


def csrf_token_from(request: Request) -> Optional[str]:
    return request.headers.get(CSRF_HEADER) or request.query_params.get("csrf_token")


def require_csrf(form_name: str = "default"):
    """
    Build a dependency that verifies the request's CSRF token for ``form_name``.

    Raises:
        CsrfError: If the token is missing, expired or does not match
    """
    def verify(
        request: Request,
        session: Session = Depends(get_session),
        context: RequestContext = Depends(get_context),
        services: Services = Depends(get_services),
    ) -> None:
        if not services.csrf.verify(session, csrf_token_from(request), form_name, context):
            raise CsrfError()

    return verify
