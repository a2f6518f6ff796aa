"""Authentication router for CSRF tokens, login and logout."""

import logging
from fastapi import APIRouter, Depends

from secureblog.dependencies import Services, get_context, get_services, get_session, require_csrf, require_user
from secureblog.exceptions import AuthError, ValidationError
from secureblog.schemas import CsrfTokenResponse, CurrentUser, UserLogin
from secureblog.sessions import RequestContext, Session

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

LOGIN_FORM = "login_form"
LOGOUT_FORM = "logout"


@router.get("/csrf-token", response_model=CsrfTokenResponse)
def csrf_token(
    form: str = "default",
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    """
    Issue a CSRF token for a form.

    Args:
        form: Form name the token is scoped to

    Returns:
        CsrfTokenResponse: Token and the form it belongs to
    """
    form = services.sanitizer.sanitize(form, "alphanumeric") or "default"
    token = services.csrf.generate(session, form)
    return {"csrf_token": token, "form": form}


def login_rate_limit(
    context: RequestContext = Depends(get_context),
    services: Services = Depends(get_services),
) -> None:
    """
    Dependency that limits login attempts per connecting address.

    Forwarded client-IP headers are ignored here so they cannot reset the window.

    Raises:
        RateLimitError: If the window for this IP is full
    """
    max_attempts, window = services.settings.login_rate_limit
    services.rate_limiter.check(
        f"login_{context.remote_addr}", max_attempts, window, context,
        message="Too many login attempts. Please try again later.",
    )


@router.post(
    "/login",
    dependencies=[Depends(login_rate_limit), Depends(require_csrf(LOGIN_FORM))],
)
def login(
    credentials: UserLogin,
    session: Session = Depends(get_session),
    context: RequestContext = Depends(get_context),
    services: Services = Depends(get_services),
):
    """
    Authenticate a user on the current session.

    Login is rate limited per client IP before the CSRF token is checked.

    Returns:
        dict: Success flag and the logged-in user

    Raises:
        RateLimitError: If the client IP exceeded the login rate limit
        ValidationError: If username or password is missing
        AuthError: If the credentials are wrong or the account is locked
    """
    username = services.sanitizer.sanitize(credentials.username, "alphanumeric")
    logger.info(f"Login attempt for user: {username}")

    if not username or not credentials.password:
        raise ValidationError("Username and password are required")

    if len(credentials.password) < services.settings.password_min_length:
        services.throttle.record_failure(username, context)
        logger.warning(f"Login failed: password below minimum length - {username}")
        raise AuthError("Invalid credentials")

    user = services.sessions.authenticate(session, context, username, credentials.password)
    return {"success": True, "user": user}


@router.post("/logout", dependencies=[Depends(require_csrf(LOGOUT_FORM))])
def logout(
    session: Session = Depends(require_user),
    context: RequestContext = Depends(get_context),
    services: Services = Depends(get_services),
):
    """End the current session."""
    username = session.username
    services.sessions.logout(session, context)
    logger.info(f"User logged out: {username}")
    return {"success": True}


@router.get("/me", response_model=CurrentUser)
def me(session: Session = Depends(require_user)):
    """Return the logged-in user."""
    return {"username": session.username, "role": session.role or "author"}
