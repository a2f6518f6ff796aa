"""Categories and tags kept in ``taxonomy.json``."""

import logging
from pathlib import Path
from typing import Dict, List
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from secureblog.exceptions import StorageError, ValidationError
from secureblog.filestore import read_json, write_json
from secureblog.models import TaxonomyTerm
from secureblog.sanitizer import slugify, strip_tags

# Configure logging
logger = logging.getLogger(__name__)

_terms_adapter = TypeAdapter(List[TaxonomyTerm])


class TaxonomyStore:
    """Reads and writes the shared category and tag lists."""

    def __init__(self, taxonomy_file: Path):
        self.taxonomy_file = Path(taxonomy_file)

    def _load(self) -> Dict[str, List[dict]]:
        data = read_json(self.taxonomy_file, default=None)
        if not isinstance(data, dict):
            return {"categories": [], "tags": []}
        try:
            return {
                kind: [term.model_dump() for term in _terms_adapter.validate_python(data.get(kind, []))]
                for kind in ("categories", "tags")
            }
        except PydanticValidationError:
            logger.error(f"Malformed taxonomy file: {self.taxonomy_file.name}")
            raise StorageError()

    def _save(self, data: Dict[str, List[dict]]) -> None:
        write_json(self.taxonomy_file, data)

    def initialize(self) -> None:
        if not self.taxonomy_file.exists():
            self._save({"categories": [], "tags": []})

    def list_categories(self) -> List[dict]:
        return self._load()["categories"]

    def list_tags(self) -> List[dict]:
        return self._load()["tags"]

    @staticmethod
    def _find(terms: List[dict], name: str, slug: str):
        for term in terms:
            if term.get("slug") == slug or term.get("name", "").lower() == name.lower():
                return term
        return None

    def _add(self, kind: str, name: str, allow_existing: bool) -> dict:
        label = "Category" if kind == "categories" else "Tag"
        name = strip_tags(str(name or "")).strip()
        if not name:
            raise ValidationError(f"{label} name cannot be empty.")

        slug = slugify(name)
        if not slug:
            raise ValidationError(f"{label} name must contain letters or digits.")

        taxonomy = self._load()
        existing = self._find(taxonomy[kind], name, slug)
        if existing is not None:
            if allow_existing:
                return existing
            raise ValidationError(f"{label} already exists.")

        term = TaxonomyTerm(slug=slug, name=name).model_dump()
        taxonomy[kind].append(term)
        taxonomy[kind].sort(key=lambda item: item["name"].lower())
        self._save(taxonomy)

        logger.info(f"{label} added: {slug}")
        return term

    def add_category(self, name: str) -> dict:
        """
        Add a category.

        Raises:
            ValidationError: If the name is empty or already taken
        """
        return self._add("categories", name, allow_existing=False)

    def add_tag(self, name: str) -> dict:
        """
        Add a tag.

        Raises:
            ValidationError: If the name is empty or already taken
        """
        return self._add("tags", name, allow_existing=False)

    def ensure_tag(self, name: str) -> dict:
        """Return the tag called ``name``, adding it first if needed."""
        return self._add("tags", name, allow_existing=True)
