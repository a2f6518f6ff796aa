"""Pydantic schemas for request and response validation."""

from typing import List, Literal, Optional, Union
from pydantic import BaseModel, field_validator


# Auth Schemas
class UserLogin(BaseModel):
    """Schema for user login request."""

    username: str = ""
    password: str = ""


class CsrfTokenResponse(BaseModel):
    """Schema for CSRF token response."""

    csrf_token: str
    form: str


class CurrentUser(BaseModel):
    """Schema for the logged-in user."""

    username: str
    role: str


# Post Schemas
class PostCreate(BaseModel):
    """Schema for post creation request."""

    title: str
    content: str
    excerpt: Optional[str] = None
    slug: Optional[str] = None
    status: Literal["draft", "published"] = "draft"
    visibility: Literal["public", "private"] = "public"
    password_protected: bool = False
    post_password: Optional[str] = None
    meta_description: Optional[str] = None
    meta_keywords: Optional[str] = None
    categories: List[str] = []
    tags: Union[str, List[str], None] = None

    @field_validator('title', 'content')
    @classmethod
    def not_empty(cls, v: str) -> str:
        """Validate that title and content are not empty."""
        if not v or not v.strip():
            raise ValueError('Title and content are required')
        return v


class PostUpdate(BaseModel):
    """Schema for post update request; omitted fields keep their values."""

    title: Optional[str] = None
    content: Optional[str] = None
    excerpt: Optional[str] = None
    slug: Optional[str] = None
    status: Optional[Literal["draft", "published"]] = None
    visibility: Optional[Literal["public", "private"]] = None
    password_protected: Optional[bool] = None
    post_password: Optional[str] = None
    meta_description: Optional[str] = None
    meta_keywords: Optional[str] = None
    categories: Optional[List[str]] = None
    tags: Union[str, List[str], None] = None


class PostUnlock(BaseModel):
    """Schema for unlocking a password-protected post."""

    password: str


class PostSummary(BaseModel):
    """Public listing entry for a post."""

    id: str
    title: str
    slug: str
    excerpt: str = ""
    author: str = ""
    created_at: int
    updated_at: int
    views: int = 0
    categories: List[str] = []
    tags: str = ""
    password_protected: bool = False


class PostDetail(PostSummary):
    """Public view of a post; content is withheld while the post is locked."""

    content: Optional[str] = None
    meta_description: str = ""
    meta_keywords: str = ""
    locked: bool = False


# Taxonomy Schemas
class TermCreate(BaseModel):
    """Schema for category or tag creation request."""

    name: str

    @field_validator('name')
    @classmethod
    def name_not_empty(cls, v: str) -> str:
        """Validate that name is not empty."""
        if not v or not v.strip():
            raise ValueError('Name cannot be empty')
        return v


# Admin Schemas
class RestoreRequest(BaseModel):
    """Schema for backup restore request."""

    backup_file: str


class UserCreate(BaseModel):
    """Schema for user creation request."""

    username: str
    password: str
    role: Literal["admin", "editor", "author"] = "author"


class UserUpdate(BaseModel):
    """Schema for user update request."""

    password: Optional[str] = None
    role: Optional[Literal["admin", "editor", "author"]] = None
