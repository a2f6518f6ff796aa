"""Category and tag router."""

import logging
from fastapi import APIRouter, Depends, status

from secureblog.dependencies import Services, get_services, require_csrf, require_user
from secureblog.schemas import TermCreate
from secureblog.sessions import Session

# Configure logging
logger = logging.getLogger(__name__)

router = APIRouter(tags=["Taxonomy"])

TAXONOMY_FORM = "taxonomy_form"


@router.get("/categories")
def list_categories(services: Services = Depends(get_services)):
    """List every category, sorted by name."""
    return {"categories": services.taxonomy.list_categories()}


@router.post(
    "/categories",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_csrf(TAXONOMY_FORM))],
)
def create_category(
    term: TermCreate,
    session: Session = Depends(require_user),
    services: Services = Depends(get_services),
):
    """
    Add a category.

    Raises:
        ValidationError: If the name is empty or already taken
    """
    category = services.taxonomy.add_category(term.name)
    logger.info(f"Category created by {session.username}: {category['slug']}")
    return {"success": True, "category": category}


@router.get("/tags")
def list_tags(services: Services = Depends(get_services)):
    """List every tag, sorted by name."""
    return {"tags": services.taxonomy.list_tags()}


@router.post(
    "/tags",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_csrf(TAXONOMY_FORM))],
)
def create_tag(
    term: TermCreate,
    session: Session = Depends(require_user),
    services: Services = Depends(get_services),
):
    """
    Add a tag.

    Raises:
        ValidationError: If the name is empty or already taken
    """
    tag = services.taxonomy.add_tag(term.name)
    logger.info(f"Tag created by {session.username}: {tag['slug']}")
    return {"success": True, "tag": tag}
