"""Image upload router: upload, list, serve, thumbnail and delete."""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.responses import FileResponse

from secureblog.csrf import UPLOAD_FORM
from secureblog.dependencies import Services, get_context, get_services, require_csrf, require_user
from secureblog.exceptions import NotFoundError
from secureblog.sessions import RequestContext, Session
from secureblog.uploads import UploadedFile, UploadError

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(tags=["Images"])

IMAGE_FORM = "image_manage"


def upload_rate_limit(
    session: Session = Depends(require_user),
    context: RequestContext = Depends(get_context),
    services: Services = Depends(get_services),
) -> None:
    """
    Dependency that limits uploads per user.

    Raises:
        RateLimitError: If the user's upload window is full
    """
    max_attempts, window = services.settings.upload_rate_limit
    services.rate_limiter.check(
        f"upload_{session.username}", max_attempts, window, context,
        message="Upload limit exceeded. Please try again later.",
    )


@router.post(
    "/upload-image",
    dependencies=[Depends(require_csrf(UPLOAD_FORM)), Depends(upload_rate_limit)],
)
def upload_image(
    file: Optional[UploadFile] = File(None),
    context: RequestContext = Depends(get_context),
    services: Services = Depends(get_services),
):
    """
    Validate and store an uploaded image.

    The upload CSRF token stays valid after use so one page load can
    upload several images.

    Returns:
        dict: ``{"success", "filename", "url", "path", "size", "dimensions"}``

    Raises:
        ValidationError: If no file was sent or it is empty or too large
        SecurityViolation: If the image fails a security check
    """
    if file is None:
        upload = UploadedFile(filename="", content=None, error=UploadError.NO_FILE)
    else:
        # One byte past the limit is enough to reject oversized files
        content = file.file.read(services.settings.max_upload_size + 1)
        upload = UploadedFile(
            filename=file.filename or "",
            content=content,
            content_type=file.content_type or "",
        )

    return services.uploads.handle_upload(upload, context)


@router.get("/images")
def list_images(
    limit: int = 50,
    offset: int = 0,
    session: Session = Depends(require_user),
    services: Services = Depends(get_services),
):
    """List stored images, newest first."""
    limit = max(1, min(limit, 200))
    offset = max(0, offset)
    return {
        "images": services.uploads.list_images(limit, offset),
        "total": services.uploads.image_count(),
    }


@router.get("/images/{filename}/info")
def image_info(
    filename: str,
    session: Session = Depends(require_user),
    services: Services = Depends(get_services),
):
    """
    Describe one stored image.

    Raises:
        NotFoundError: If the image does not exist
    """
    info = services.uploads.image_info(filename)
    if info is None:
        raise NotFoundError("Image not found")
    return info


@router.get("/images/{filename}")
def serve_image(filename: str, services: Services = Depends(get_services)):
    """
    Serve a stored image.

    Args:
        filename: Generated image name

    Returns:
        FileResponse: The image with its detected content type

    Raises:
        HTTPException: If the name attempts path traversal
        NotFoundError: If the image is missing or fails re-validation
    """
    if ".." in filename or "/" in filename or "\\" in filename:
        logger.warning(f"Potential directory traversal attempt: {filename}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid filename"
        )

    path, mime_type = services.uploads.resolve_image(filename)
    logger.debug(f"Serving image: {path.name}")
    return FileResponse(
        path=str(path),
        media_type=mime_type,
        headers={"Content-Disposition": f'inline; filename="{path.name}"'},
    )


@router.post("/images/{filename}/thumbnail", dependencies=[Depends(require_csrf(IMAGE_FORM))])
def create_thumbnail(
    filename: str,
    max_width: int = 300,
    max_height: int = 300,
    session: Session = Depends(require_user),
    services: Services = Depends(get_services),
):
    """Create a resized copy of a stored image."""
    max_width = max(1, min(max_width, 2000))
    max_height = max(1, min(max_height, 2000))
    return services.uploads.create_thumbnail(filename, max_width, max_height)


@router.delete("/images/{filename}", dependencies=[Depends(require_csrf(IMAGE_FORM))])
def delete_image(
    filename: str,
    session: Session = Depends(require_user),
    context: RequestContext = Depends(get_context),
    services: Services = Depends(get_services),
):
    """Delete a stored image."""
    services.uploads.delete_image(filename, context)
    return {"success": True, "message": "Image deleted successfully"}
