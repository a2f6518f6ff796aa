"""Configuration for SecureBlog, loaded from environment variables."""

import os
import logging
from pathlib import Path
from typing import List, Optional, Tuple
from pydantic import BaseModel, Field
from dotenv import load_dotenv

# Configure logging
logger = logging.getLogger(__name__)

DEFAULT_ALLOWED_HTML_TAGS = (
    "p", "br", "strong", "em", "u", "h1", "h2", "h3", "h4", "ul", "ol",
    "li", "a", "img", "blockquote", "code", "pre",
)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


class Settings(BaseModel):
    """Runtime settings shared by every service."""

    data_dir: Path
    admin_username: Optional[str] = None
    admin_password_hash: Optional[str] = None

    # Sessions and authentication
    session_name: str = "SECURE_CMS_SESSION"
    session_lifetime: int = 172800  # 48 hours
    session_regenerate_interval: int = 1800
    csrf_token_length: int = 32
    csrf_token_lifetime: int = 172800
    max_login_attempts: int = 5
    login_lockout_time: int = 900  # 15 minutes
    password_min_length: int = 12

    # Password hashing cost
    argon2_memory_cost: int = 65536
    argon2_time_cost: int = 4
    argon2_parallelism: int = 1
    bcrypt_rounds: int = 12

    # Rate limits as (max attempts, window seconds)
    login_rate_limit: Tuple[int, int] = (10, 600)
    upload_rate_limit: Tuple[int, int] = (20, 3600)
    default_rate_limit: Tuple[int, int] = (100, 3600)

    # Posts
    allowed_html_tags: Tuple[str, ...] = DEFAULT_ALLOWED_HTML_TAGS
    max_title_length: int = 200
    max_content_length: int = 50000
    max_excerpt_length: int = 500
    posts_per_page: int = 10
    post_password_ttl: int = 3600
    require_login_for_posts: bool = False
    auto_backup: bool = True
    max_backups: int = 10

    # Uploads
    max_upload_size: int = 5 * 1024 * 1024
    max_image_dimension: int = 10000
    image_url_prefix: str = "/images"

    cors_origins: List[str] = Field(default_factory=list)

    @property
    def posts_dir(self) -> Path:
        return self.data_dir / "posts"

    @property
    def users_dir(self) -> Path:
        return self.data_dir / "users"

    @property
    def sessions_dir(self) -> Path:
        return self.data_dir / "sessions"

    @property
    def logs_dir(self) -> Path:
        return self.data_dir / "logs"

    @property
    def backup_dir(self) -> Path:
        return self.data_dir / "backups"

    @property
    def uploads_dir(self) -> Path:
        return self.data_dir / "uploads" / "images"

    @property
    def index_file(self) -> Path:
        return self.data_dir / "post_index.json"

    @property
    def taxonomy_file(self) -> Path:
        return self.data_dir / "taxonomy.json"

    @property
    def protected_dirs(self) -> List[Path]:
        """Directories that must exist before any request is served."""
        return [
            self.data_dir,
            self.posts_dir,
            self.users_dir,
            self.sessions_dir,
            self.logs_dir,
            self.backup_dir,
        ]

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from the environment (and a .env file if present).

        Returns:
            Settings: Populated settings

        Raises:
            ValueError: If DATA_DIR is not configured
        """
        load_dotenv()

        data_dir = os.getenv("DATA_DIR")
        if not data_dir:
            raise ValueError("DATA_DIR must be set in .env file")

        cors = os.getenv("CORS_ORIGINS", "")
        settings = cls(
            data_dir=Path(data_dir),
            admin_username=os.getenv("ADMIN_USERNAME") or None,
            admin_password_hash=os.getenv("ADMIN_PASSWORD_HASH") or None,
            session_name=os.getenv("SESSION_NAME", "SECURE_CMS_SESSION"),
            session_lifetime=_env_int("SESSION_LIFETIME", 172800),
            session_regenerate_interval=_env_int("SESSION_REGENERATE_INTERVAL", 1800),
            csrf_token_length=_env_int("CSRF_TOKEN_LENGTH", 32),
            csrf_token_lifetime=_env_int("CSRF_TOKEN_LIFETIME", 172800),
            max_login_attempts=_env_int("MAX_LOGIN_ATTEMPTS", 5),
            login_lockout_time=_env_int("LOGIN_LOCKOUT_TIME", 900),
            password_min_length=_env_int("PASSWORD_MIN_LENGTH", 12),
            argon2_memory_cost=_env_int("ARGON2_MEMORY_COST", 65536),
            argon2_time_cost=_env_int("ARGON2_TIME_COST", 4),
            argon2_parallelism=_env_int("ARGON2_PARALLELISM", 1),
            bcrypt_rounds=_env_int("BCRYPT_ROUNDS", 12),
            max_title_length=_env_int("MAX_POST_TITLE_LENGTH", 200),
            max_content_length=_env_int("MAX_POST_CONTENT_LENGTH", 50000),
            max_excerpt_length=_env_int("MAX_POST_EXCERPT_LENGTH", 500),
            posts_per_page=_env_int("POSTS_PER_PAGE", 10),
            post_password_ttl=_env_int("POST_PASSWORD_TTL", 3600),
            require_login_for_posts=_env_bool("REQUIRE_LOGIN_FOR_POSTS", False),
            auto_backup=_env_bool("AUTO_BACKUP", True),
            max_backups=_env_int("MAX_BACKUPS", 10),
            max_upload_size=_env_int("MAX_UPLOAD_SIZE", 5 * 1024 * 1024),
            max_image_dimension=_env_int("MAX_IMAGE_DIMENSION", 10000),
            cors_origins=[origin.strip() for origin in cors.split(",") if origin.strip()],
        )

        if not settings.admin_username or not settings.admin_password_hash:
            logger.warning("ADMIN_USERNAME/ADMIN_PASSWORD_HASH not configured, only file users can log in")

        logger.info(f"Data directory: {settings.data_dir}")
        return settings
