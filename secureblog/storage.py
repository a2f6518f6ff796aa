"""
Flat-file post persistence.

Every post is one JSON file under ``posts/``. Listing, search and slug
checks scan those files; ``post_index.json`` is rewritten after each
mutation for callers that only need titles and slugs. Writes replace
whole files, but there is no locking across a read-modify-write: view
counters and concurrent edits of the same post may lose updates.
"""

import math
import time
import secrets
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from secureblog.exceptions import NotFoundError, StorageError, ValidationError
from secureblog.filestore import provision_directory, read_json, remove_file, write_json
from secureblog.models import Backup, PostIndexEntry
from secureblog.passwords import PasswordVault
from secureblog.sanitizer import InputSanitizer, slugify, strip_tags
from secureblog.security_log import SecurityLog
from secureblog.taxonomy import TaxonomyStore

# Configure logging
logger = logging.getLogger(__name__)

STATUSES = ("draft", "published")
VISIBILITIES = ("public", "private")
EXCERPT_ELLIPSIS = "..."

_index_adapter = TypeAdapter(List[PostIndexEntry])


def _choice(value: Any, allowed: tuple, default: str) -> str:
    return value if value in allowed else default


def _sort_key(post: dict, field: str):
    value = post.get(field)
    if isinstance(value, str):
        return (1, value.lower())
    return (0, value or 0)


class PostStore:
    """Create, read, update, delete, search and back up posts."""

    def __init__(
        self,
        settings,
        sanitizer: InputSanitizer,
        vault: PasswordVault,
        taxonomy: TaxonomyStore,
        security_log: Optional[SecurityLog] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.sanitizer = sanitizer
        self.vault = vault
        self.taxonomy = taxonomy
        self.security_log = security_log
        self.clock = clock
        self.posts_dir = settings.posts_dir
        self.backup_dir = settings.backup_dir

    def initialize_directories(self) -> None:
        """
        Create every data directory with its guard files.

        Raises:
            OSError: If a directory cannot be created
        """
        for directory in self.settings.protected_dirs:
            provision_directory(directory)
            logger.info(f"Storage directory ready: {directory}")
        self.taxonomy.initialize()

    def _log(self, event: str, details: str = "") -> None:
        if self.security_log:
            self.security_log.log_event(event, details)

    # Identifiers and derived fields

    def _generate_id(self) -> str:
        return f"{int(self.clock())}_{secrets.token_hex(8)}"

    def _post_path(self, post_id: str) -> Path:
        return self.posts_dir / f"{post_id}.json"

    def _clean_id(self, post_id: Any) -> str:
        return self.sanitizer.sanitize(post_id, "alphanumeric")

    def generate_excerpt(self, content: str, length: Optional[int] = None) -> str:
        """
        Plain-text summary of ``content`` no longer than ``length``.

        Tags are stripped and whitespace collapsed. Longer text is cut at
        the last space that fits together with the ellipsis.
        """
        length = length or self.settings.max_excerpt_length
        text = " ".join(strip_tags(content).split())
        if len(text) <= length:
            return text

        limit = max(0, length - len(EXCERPT_ELLIPSIS))
        cut = text[:limit + 1].rfind(" ")
        excerpt = text[:cut] if cut > 0 else text[:limit]
        return excerpt.rstrip() + EXCERPT_ELLIPSIS

    def ensure_unique_slug(self, slug: str, exclude_id: Optional[str] = None) -> str:
        """Return ``slug``, or ``slug-1``, ``slug-2``, ... whichever no other post uses."""
        taken = {
            post.get("slug")
            for post in self.list_all()
            if post.get("id") != exclude_id
        }
        candidate = slug
        counter = 1
        while candidate in taken:
            candidate = f"{slug}-{counter}"
            counter += 1
        return candidate

    def _clean_categories(self, categories: Any) -> List[str]:
        if not categories:
            return []
        if isinstance(categories, str):
            categories = categories.split(",")
        cleaned = []
        for category in self.sanitizer.sanitize(list(categories), "slug"):
            if category and category not in cleaned:
                cleaned.append(category)
        return cleaned

    def _clean_tags(self, tags: Any) -> str:
        if not tags:
            return ""
        if isinstance(tags, str):
            tags = tags.split(",")
        names = [name for name in self.sanitizer.sanitize(list(tags), "string") if name]
        return ", ".join(names)

    def _register_tags(self, tags: str) -> None:
        for name in tags.split(","):
            name = name.strip()
            if name and slugify(name):
                self.taxonomy.ensure_tag(name)

    def _validate_lengths(self, post: dict) -> None:
        if len(post["title"]) > self.settings.max_title_length:
            raise ValidationError("Title too long")
        if len(post["content"]) > self.settings.max_content_length:
            raise ValidationError("Content too long")

    # Persistence

    def _save_post(self, post: dict) -> None:
        post_id = post.get("id", "")
        if not post_id or self._clean_id(post_id) != post_id:
            raise ValidationError("Invalid post id")
        write_json(self._post_path(post_id), post)

    def _rebuild_index(self) -> None:
        index = [
            PostIndexEntry(
                id=post["id"],
                title=post.get("title", ""),
                slug=post.get("slug", ""),
                status=post.get("status", "draft"),
                created_at=post.get("created_at", 0),
                updated_at=post.get("updated_at", 0),
            ).model_dump()
            for post in self.list_all()
        ]
        write_json(self.settings.index_file, index)

    def read_index(self) -> List[dict]:
        """Entries of ``post_index.json``: id, title, slug, status and timestamps."""
        index = read_json(self.settings.index_file, default=[])
        try:
            return [entry.model_dump() for entry in _index_adapter.validate_python(index)]
        except PydanticValidationError:
            logger.warning("Post index is malformed")
            return []

    # Mutations

    def create(self, data: Dict[str, Any], author: str = "admin") -> dict:
        """
        Create a post.

        Args:
            data: Untrusted field values (title, content, excerpt, slug,
                status, visibility, password_protected, post_password,
                meta_description, meta_keywords, categories, tags)
            author: Username recorded as the author

        Returns:
            dict: The stored post

        Raises:
            ValidationError: If required fields are missing or too long, or a
                protected post has no password
            StorageError: If the post cannot be written
        """
        title = self.sanitizer.sanitize(data.get("title"), "string")
        content = self.sanitizer.sanitize(data.get("content"), "html")
        if not title or not content:
            raise ValidationError("Title and content are required")

        now = int(self.clock())
        post = {
            "id": self._generate_id(),
            "title": title,
            "content": content,
            "excerpt": self.sanitizer.sanitize(data.get("excerpt"), "string"),
            "slug": self.sanitizer.sanitize(data.get("slug"), "slug"),
            "author": self.sanitizer.sanitize(author, "alphanumeric") or "admin",
            "status": _choice(data.get("status"), STATUSES, "draft"),
            "created_at": now,
            "updated_at": now,
            "views": 0,
            "meta_description": self.sanitizer.sanitize(data.get("meta_description"), "string"),
            "meta_keywords": self.sanitizer.sanitize(data.get("meta_keywords"), "string"),
            "visibility": _choice(data.get("visibility"), VISIBILITIES, "public"),
            "password_protected": bool(data.get("password_protected")),
            "post_password": "",
            "categories": self._clean_categories(data.get("categories")),
            "tags": self._clean_tags(data.get("tags")),
        }

        if post["password_protected"]:
            if not data.get("post_password"):
                raise ValidationError("Password is required for protected posts")
            post["post_password"] = self.vault.hash(str(data["post_password"]))

        self._validate_lengths(post)

        if not post["slug"]:
            post["slug"] = slugify(title) or "post"
        post["slug"] = self.ensure_unique_slug(post["slug"])

        if not post["excerpt"]:
            post["excerpt"] = self.generate_excerpt(content)

        self._register_tags(post["tags"])
        self._save_post(post)
        self._rebuild_index()

        if self.settings.auto_backup:
            self.backup("post_created", post["id"])

        logger.info(f"Post created: {post['id']} ({post['slug']})")
        self._log("Post created", post["id"])
        return post

    def update(self, post_id: str, data: Dict[str, Any]) -> dict:
        """
        Merge ``data`` into an existing post.

        Fields missing from ``data`` (or None) keep their stored values.
        The slug is only re-checked for uniqueness when it changes.

        Returns:
            dict: The stored post

        Raises:
            NotFoundError: If the post does not exist
            ValidationError: If the merged post is invalid
            StorageError: If the post cannot be written
        """
        post_id = self._clean_id(post_id)
        existing = self.get_by_id(post_id)
        if existing is None:
            raise NotFoundError("Post not found")

        def pick(key: str, default: Any = "") -> Any:
            value = data.get(key)
            return existing.get(key, default) if value is None else value

        title = self.sanitizer.sanitize(pick("title"), "string")
        content = self.sanitizer.sanitize(pick("content"), "html")
        if not title or not content:
            raise ValidationError("Title and content are required")

        post = {
            "id": existing["id"],
            "title": title,
            "content": content,
            "excerpt": self.sanitizer.sanitize(pick("excerpt"), "string"),
            "slug": self.sanitizer.sanitize(pick("slug"), "slug"),
            "author": existing.get("author", "admin"),
            "status": _choice(pick("status"), STATUSES, "draft"),
            "created_at": existing.get("created_at", int(self.clock())),
            "updated_at": int(self.clock()),
            "views": existing.get("views", 0),
            "meta_description": self.sanitizer.sanitize(pick("meta_description"), "string"),
            "meta_keywords": self.sanitizer.sanitize(pick("meta_keywords"), "string"),
            "visibility": _choice(pick("visibility", "public"), VISIBILITIES, "public"),
            "password_protected": bool(pick("password_protected", False)),
            "post_password": existing.get("post_password", ""),
            "categories": self._clean_categories(pick("categories", [])),
            "tags": self._clean_tags(pick("tags")),
        }

        if post["password_protected"]:
            if data.get("post_password"):
                post["post_password"] = self.vault.hash(str(data["post_password"]))
            elif not post["post_password"]:
                raise ValidationError("Password is required for protected posts")
        else:
            post["post_password"] = ""

        self._validate_lengths(post)

        if not post["slug"]:
            post["slug"] = slugify(title) or "post"
        if post["slug"] != existing.get("slug"):
            post["slug"] = self.ensure_unique_slug(post["slug"], exclude_id=post_id)

        if not post["excerpt"]:
            post["excerpt"] = self.generate_excerpt(content)

        self._register_tags(post["tags"])
        self._save_post(post)
        self._rebuild_index()

        if self.settings.auto_backup:
            self.backup("post_updated", post_id)

        logger.info(f"Post updated: {post_id}")
        self._log("Post updated", post_id)
        return post

    def delete(self, post_id: str) -> None:
        """
        Delete a post, backing the post set up first when auto-backup is on.

        Raises:
            NotFoundError: If the post does not exist
        """
        post_id = self._clean_id(post_id)
        path = self._post_path(post_id)
        if not post_id or not path.is_file():
            raise NotFoundError("Post not found")

        if self.settings.auto_backup:
            self.backup("post_deleted", post_id)

        remove_file(path)
        self._rebuild_index()

        logger.info(f"Post deleted: {post_id}")
        self._log("Post deleted", post_id)

    # Reads

    def get_by_id(self, post_id: str, increment_views: bool = False, viewer_authenticated: bool = False) -> Optional[dict]:
        """
        Load one post.

        Args:
            post_id: Post id
            increment_views: Count this read as a page view
            viewer_authenticated: Authenticated viewers are never counted

        Returns:
            Optional[dict]: The post, or None if it does not exist

        Raises:
            StorageError: If the post file cannot be decoded
        """
        post_id = self._clean_id(post_id)
        if not post_id:
            return None

        post = read_json(self._post_path(post_id), default=None)
        if not isinstance(post, dict):
            return None

        if increment_views and not viewer_authenticated:
            post["views"] = int(post.get("views", 0)) + 1
            self._save_post(post)

        return post

    def get_by_slug(self, slug: str, increment_views: bool = False, viewer_authenticated: bool = False) -> Optional[dict]:
        """Load the post whose slug is ``slug``; see :meth:`get_by_id`."""
        slug = self.sanitizer.sanitize(slug, "slug")
        if not slug:
            return None

        for post in self.list_all():
            if post.get("slug") == slug:
                if increment_views and not viewer_authenticated:
                    return self.get_by_id(post["id"], increment_views=True) or post
                return post
        return None

    def list_all(self, status: str = "all", order_by: str = "created_at", order: str = "DESC") -> List[dict]:
        """
        Every decodable post, optionally filtered by status and sorted.

        Args:
            status: "all", "draft" or "published"
            order_by: Post field to sort on
            order: "DESC" or "ASC"
        """
        posts = []
        for path in self.posts_dir.glob("*.json"):
            try:
                post = read_json(path)
            except StorageError:
                logger.warning(f"Skipping unreadable post file: {path.name}")
                continue

            if not isinstance(post, dict):
                continue
            if status != "all" and post.get("status") != status:
                continue
            posts.append(post)

        posts.sort(key=lambda post: _sort_key(post, order_by), reverse=str(order).upper() == "DESC")
        return posts

    get_all = list_all

    def paginate(
        self,
        page: int = 1,
        per_page: Optional[int] = None,
        status: str = "published",
        include_private: bool = True,
    ) -> dict:
        """
        One page of posts plus pagination metadata.

        Out-of-range pages are clamped to the first or last page.
        """
        per_page = max(1, per_page or self.settings.posts_per_page)
        posts = self.list_all(status)
        if not include_private:
            posts = [post for post in posts if post.get("visibility", "public") == "public"]
        total_posts = len(posts)
        total_pages = math.ceil(total_posts / per_page)

        page = max(1, min(page, total_pages))
        offset = (page - 1) * per_page

        return {
            "posts": posts[offset:offset + per_page],
            "pagination": {
                "current_page": page,
                "total_pages": total_pages,
                "total_posts": total_posts,
                "per_page": per_page,
                "has_previous": page > 1,
                "has_next": page < total_pages,
            },
        }

    def search(self, query: str, status: str = "published") -> List[dict]:
        """Posts whose title, content, excerpt or meta keywords contain ``query``, case-insensitively."""
        query = self.sanitizer.sanitize(query, "string").lower()
        if not query:
            return []

        results = []
        for post in self.list_all(status):
            searchable = " ".join(
                str(post.get(key) or "")
                for key in ("title", "content", "excerpt", "meta_keywords")
            ).lower()
            if query in searchable:
                results.append(post)
        return results

    def get_by_category(self, category_slug: str) -> List[dict]:
        category_slug = slugify(category_slug or "")
        return [
            post for post in self.list_all("published")
            if category_slug in (post.get("categories") or [])
        ]

    def get_by_tag(self, tag_slug: str) -> List[dict]:
        tag_slug = slugify(tag_slug or "")
        return [
            post for post in self.list_all("published")
            if tag_slug in {slugify(name) for name in str(post.get("tags") or "").split(",")}
        ]

    def verify_post_password(self, post: dict, password: str) -> bool:
        """Check ``password`` against a protected post; unprotected posts always pass."""
        if not post.get("password_protected"):
            return True
        return self.vault.verify(password or "", post.get("post_password", ""))

    def get_statistics(self) -> dict:
        posts = self.list_all()
        published = sum(1 for post in posts if post.get("status") == "published")
        return {
            "total_posts": len(posts),
            "published_posts": published,
            "draft_posts": len(posts) - published,
            "total_views": sum(int(post.get("views", 0)) for post in posts),
        }

    # Backups

    def _backup_files(self) -> List[Path]:
        return sorted(self.backup_dir.glob("backup_*.json"), key=lambda path: path.name)

    def backup(self, reason: str = "manual", related_id: str = "") -> str:
        """
        Snapshot every post into ``backups/``, then prune the oldest
        snapshots beyond ``max_backups``.

        Returns:
            str: Filename of the new backup

        Raises:
            StorageError: If the snapshot cannot be written
        """
        now = datetime.fromtimestamp(self.clock())
        date = now.strftime("%Y-%m-%d_%H-%M-%S")
        stem = f"backup_{date}_{now.microsecond:06d}"
        filename = f"{stem}.json"
        counter = 0
        while (self.backup_dir / filename).exists():
            counter += 1
            filename = f"{stem}_{counter:03d}.json"

        snapshot = {
            "timestamp": int(now.timestamp()),
            "date": date,
            "reason": self.sanitizer.sanitize(reason, "string"),
            "related_id": self._clean_id(related_id),
            "posts": self.list_all("all"),
        }
        write_json(self.backup_dir / filename, snapshot)
        self._prune_backups()

        logger.info(f"Backup created: {filename} ({reason})")
        return filename

    def _prune_backups(self) -> None:
        backups = self._backup_files()
        excess = len(backups) - self.settings.max_backups
        for path in backups[:max(0, excess)]:
            remove_file(path)
            logger.debug(f"Pruned old backup: {path.name}")

    def list_backups(self) -> List[dict]:
        """Available backups, newest first."""
        backups = []
        for path in reversed(self._backup_files()):
            stat = path.stat()
            backups.append({
                "filename": path.name,
                "size": stat.st_size,
                "date": datetime.fromtimestamp(stat.st_mtime).strftime("%Y-%m-%d %H:%M:%S"),
            })
        return backups

    def restore(self, backup_file: str) -> int:
        """
        Replace the whole post set with a backup's snapshot.

        Every current post file is deleted before the snapshot is written;
        posts created after the backup are lost.

        Args:
            backup_file: Backup filename as returned by :meth:`list_backups`

        Returns:
            int: Number of posts restored

        Raises:
            NotFoundError: If the backup does not exist
            ValidationError: If the backup does not decode to a backup record
        """
        filename = self.sanitizer.sanitize(backup_file, "filename")
        path = self.backup_dir / filename
        if not filename.startswith("backup_") or not filename.endswith(".json") or not path.is_file():
            raise NotFoundError("Backup file not found")

        try:
            data = read_json(path)
            snapshot = Backup.model_validate(data)
        except (StorageError, PydanticValidationError):
            logger.error(f"Invalid backup file: {filename}")
            raise ValidationError("Invalid backup file")

        records = [post.model_dump() for post in snapshot.posts]
        for record in records:
            if self._clean_id(record["id"]) != record["id"]:
                raise ValidationError("Invalid backup file")

        for existing in self.posts_dir.glob("*.json"):
            remove_file(existing)

        for record in records:
            self._save_post(record)
        self._rebuild_index()

        logger.info(f"Backup restored: {filename} ({len(records)} posts)")
        self._log("Backup restored", filename)
        return len(records)
