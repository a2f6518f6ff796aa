"""Public blog router: listing, search and reading posts."""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status

from secureblog.dependencies import Services, get_context, get_services, get_session, is_authenticated
from secureblog.exceptions import AuthError, NotFoundError
from secureblog.schemas import PostDetail, PostSummary, PostUnlock
from secureblog.sessions import RequestContext, Session

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/blog", tags=["Blog"])


def public_access(
    authenticated: bool = Depends(is_authenticated),
    services: Services = Depends(get_services),
) -> bool:
    """
    Dependency that enforces REQUIRE_LOGIN_FOR_POSTS.

    Returns:
        bool: Whether the viewer is authenticated

    Raises:
        HTTPException: If login is required and the viewer is anonymous
    """
    if services.settings.require_login_for_posts and not authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )
    return authenticated


def _summary(post: dict) -> dict:
    return PostSummary.model_validate(post).model_dump()


def _visible(post: dict, authenticated: bool) -> bool:
    if authenticated:
        return True
    return post.get("status") == "published" and post.get("visibility", "public") == "public"


def _detail(post: dict, unlocked: bool) -> dict:
    detail = PostDetail.model_validate(post)
    if post.get("password_protected") and not unlocked:
        detail.content = None
        detail.locked = True
    return detail.model_dump()


@router.get("/posts")
def list_posts(
    page: int = 1,
    per_page: Optional[int] = None,
    authenticated: bool = Depends(public_access),
    services: Services = Depends(get_services),
):
    """
    Paginated list of published posts.

    Private posts are only listed for authenticated viewers.
    """
    result = services.posts.paginate(page, per_page, "published", include_private=authenticated)
    return {
        "posts": [_summary(post) for post in result["posts"]],
        "pagination": result["pagination"],
    }


@router.get("/search")
def search_posts(
    q: str = "",
    authenticated: bool = Depends(public_access),
    services: Services = Depends(get_services),
):
    """Search published posts by title, content, excerpt and keywords."""
    posts = [post for post in services.posts.search(q) if _visible(post, authenticated)]
    logger.info(f"Search returned {len(posts)} posts")
    return {"query": services.sanitizer.sanitize(q, "string"), "posts": [_summary(post) for post in posts]}


@router.get("/categories/{category}")
def posts_by_category(
    category: str,
    authenticated: bool = Depends(public_access),
    services: Services = Depends(get_services),
):
    """Published posts filed under a category slug."""
    posts = [post for post in services.posts.get_by_category(category) if _visible(post, authenticated)]
    return {"category": category, "posts": [_summary(post) for post in posts]}


@router.get("/tags/{tag}")
def posts_by_tag(
    tag: str,
    authenticated: bool = Depends(public_access),
    services: Services = Depends(get_services),
):
    """Published posts carrying a tag."""
    posts = [post for post in services.posts.get_by_tag(tag) if _visible(post, authenticated)]
    return {"tag": tag, "posts": [_summary(post) for post in posts]}


@router.get("/posts/{slug}")
def read_post(
    slug: str,
    authenticated: bool = Depends(public_access),
    session: Session = Depends(get_session),
    services: Services = Depends(get_services),
):
    """
    Read one post by slug.

    Anonymous reads count as a view; authenticated reads never do.
    Password-protected posts are returned without content until unlocked.

    Raises:
        NotFoundError: If the post does not exist or is not visible to the viewer
    """
    post = services.posts.get_by_slug(slug)
    if post is None or not _visible(post, authenticated):
        raise NotFoundError("Post not found")

    post = services.posts.get_by_id(post["id"], increment_views=True, viewer_authenticated=authenticated) or post
    unlocked = authenticated or services.sessions.is_post_unlocked(session, post["id"])
    return _detail(post, unlocked)


@router.post("/posts/{slug}/unlock")
def unlock_post(
    slug: str,
    body: PostUnlock,
    authenticated: bool = Depends(public_access),
    session: Session = Depends(get_session),
    context: RequestContext = Depends(get_context),
    services: Services = Depends(get_services),
):
    """
    Unlock a password-protected post for this session.

    Raises:
        RateLimitError: If the client made too many unlock attempts
        NotFoundError: If the post does not exist or is not visible
        AuthError: If the password is wrong
    """
    max_attempts, window = services.settings.default_rate_limit
    services.rate_limiter.check(
        f"unlock_{context.remote_addr}", max_attempts, window, context,
        message="Too many attempts. Please try again later.",
    )

    post = services.posts.get_by_slug(slug)
    if post is None or not _visible(post, authenticated):
        raise NotFoundError("Post not found")

    if not services.posts.verify_post_password(post, body.password):
        logger.warning(f"Wrong password for protected post: {post['id']}")
        if services.security_log:
            services.security_log.log_event("Failed post unlock", post["id"], context)
        raise AuthError("Incorrect password")

    services.sessions.unlock_post(session, post["id"])
    return _detail(post, True)
