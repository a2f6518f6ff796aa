"""Admin router for backups, statistics and user management."""

import logging
from fastapi import APIRouter, Depends, status

from secureblog.dependencies import Services, get_services, require_admin, require_csrf
from secureblog.schemas import RestoreRequest, UserCreate, UserUpdate
from secureblog.sessions import Session

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

BACKUP_FORM = "backup_form"
USER_FORM = "user_form"


@router.post("/backup", dependencies=[Depends(require_csrf(BACKUP_FORM))])
def create_backup(
    session: Session = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """
    Snapshot every post on demand.

    Returns:
        dict: Success flag and the backup filename
    """
    filename = services.posts.backup("manual")
    logger.info(f"Manual backup by {session.username}: {filename}")
    return {"success": True, "filename": filename}


@router.get("/backups")
def list_backups(
    session: Session = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """List available backups, newest first."""
    return {"backups": services.posts.list_backups()}


@router.post("/restore", dependencies=[Depends(require_csrf(BACKUP_FORM))])
def restore_backup(
    request_data: RestoreRequest,
    session: Session = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """
    Replace every post with the contents of a backup.

    Posts created after the backup was taken are deleted.

    Returns:
        dict: Success flag and the number of restored posts

    Raises:
        NotFoundError: If the backup does not exist
        ValidationError: If the backup is not a valid snapshot
    """
    logger.warning(f"Restore of {request_data.backup_file} requested by {session.username}")
    restored = services.posts.restore(request_data.backup_file)
    return {"success": True, "restored": restored}


@router.get("/statistics")
def statistics(
    session: Session = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """Post, view, image and user counts."""
    stats = services.posts.get_statistics()
    stats["total_images"] = services.uploads.image_count()
    stats["total_users"] = len(services.users.list_users())
    stats["total_backups"] = len(services.posts.list_backups())
    return stats


@router.get("/users")
def list_users(
    session: Session = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """List file-based users without password hashes."""
    return {"users": services.users.list_users()}


@router.post(
    "/users",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_csrf(USER_FORM))],
)
def create_user(
    user_data: UserCreate,
    session: Session = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """
    Create a user.

    Raises:
        ValidationError: If a field is invalid or the user exists
    """
    user = services.users.add_user(user_data.username, user_data.password, user_data.role)
    logger.info(f"User {user['username']} created by {session.username}")
    return {"success": True, "user": user}


@router.put("/users/{username}", dependencies=[Depends(require_csrf(USER_FORM))])
def update_user(
    username: str,
    user_data: UserUpdate,
    session: Session = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """
    Change a user's password and/or role.

    Raises:
        NotFoundError: If the user does not exist
    """
    user = services.users.update_user(username, user_data.password, user_data.role)
    return {"success": True, "user": user}


@router.delete("/users/{username}", dependencies=[Depends(require_csrf(USER_FORM))])
def delete_user(
    username: str,
    session: Session = Depends(require_admin),
    services: Services = Depends(get_services),
):
    """
    Delete a user.

    Raises:
        ValidationError: If the user is the primary administrator
        NotFoundError: If the user does not exist
    """
    services.users.delete_user(username)
    logger.info(f"User {username} deleted by {session.username}")
    return {"success": True}
