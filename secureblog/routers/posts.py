"""Post management router for authenticated users."""

import logging
from typing import Literal
from fastapi import APIRouter, Depends, Query, status

from secureblog.dependencies import Services, get_services, require_csrf, require_user
from secureblog.exceptions import NotFoundError
from secureblog.schemas import PostCreate, PostUpdate
from secureblog.sessions import Session

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/posts", tags=["Posts"])

POST_FORM = "post_form"


def _public(post: dict) -> dict:
    """Post without its password hash."""
    return {key: value for key, value in post.items() if key != "post_password"}


@router.get("")
def list_posts(
    status_filter: Literal["all", "draft", "published"] = Query("all", alias="status"),
    order_by: Literal["created_at", "updated_at", "title", "views"] = "created_at",
    order: Literal["ASC", "DESC"] = "DESC",
    session: Session = Depends(require_user),
    services: Services = Depends(get_services),
):
    """List every post, drafts included."""
    posts = services.posts.list_all(status_filter, order_by, order)
    return {"posts": [_public(post) for post in posts], "total": len(posts)}


@router.get("/{post_id}")
def get_post(
    post_id: str,
    session: Session = Depends(require_user),
    services: Services = Depends(get_services),
):
    """
    Load one post by id without counting a view.

    Raises:
        NotFoundError: If the post does not exist
    """
    post = services.posts.get_by_id(post_id)
    if post is None:
        raise NotFoundError("Post not found")
    return _public(post)


@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_csrf(POST_FORM))])
def create_post(
    post_data: PostCreate,
    session: Session = Depends(require_user),
    services: Services = Depends(get_services),
):
    """
    Create a post authored by the current user.

    Returns:
        dict: Success flag and the created post
    """
    logger.info(f"Creating post for user: {session.username}")
    post = services.posts.create(post_data.model_dump(), author=session.username)
    return {"success": True, "post": _public(post)}


@router.put("/{post_id}", dependencies=[Depends(require_csrf(POST_FORM))])
def update_post(
    post_id: str,
    post_data: PostUpdate,
    session: Session = Depends(require_user),
    services: Services = Depends(get_services),
):
    """
    Update a post; omitted fields keep their stored values.

    Returns:
        dict: Success flag and the updated post
    """
    logger.info(f"Updating post {post_id} for user: {session.username}")
    post = services.posts.update(post_id, post_data.model_dump(exclude_none=True))
    return {"success": True, "post": _public(post)}


@router.delete("/{post_id}", dependencies=[Depends(require_csrf(POST_FORM))])
def delete_post(
    post_id: str,
    session: Session = Depends(require_user),
    services: Services = Depends(get_services),
):
    """Delete a post."""
    logger.info(f"Deleting post {post_id} for user: {session.username}")
    services.posts.delete(post_id)
    return {"success": True}
