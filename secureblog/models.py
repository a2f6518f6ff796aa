"""Persisted records for SecureBlog."""

from typing import List, Literal
from pydantic import BaseModel, Field


class Post(BaseModel):
    """Blog post as stored in ``posts/<id>.json``."""

    id: str
    title: str
    content: str
    excerpt: str = ""
    slug: str
    author: str = "admin"
    status: Literal["draft", "published"] = "draft"
    created_at: int
    updated_at: int
    views: int = 0
    meta_description: str = ""
    meta_keywords: str = ""
    visibility: Literal["public", "private"] = "public"
    password_protected: bool = False
    post_password: str = ""
    categories: List[str] = Field(default_factory=list)
    tags: str = ""


class PostIndexEntry(BaseModel):
    """Lightweight listing entry kept in ``post_index.json``."""

    id: str
    title: str
    slug: str
    status: str
    created_at: int
    updated_at: int


class Backup(BaseModel):
    """Snapshot of every post, as stored in ``backups/backup_*.json``."""

    timestamp: int
    date: str
    reason: str = "manual"
    related_id: str = ""
    posts: List[Post]


class TaxonomyTerm(BaseModel):
    """Category or tag entry in ``taxonomy.json``."""

    slug: str
    name: str
