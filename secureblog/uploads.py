"""
Image upload validation and storage.

Uploaded bytes go through a fixed pipeline before anything touches the
upload directory: transport checks, content-based type detection, a
Pillow decode check, extension and double-extension checks, content
scanning, a dimension ceiling and, for JPEG, a scan of the EXIF
metadata. Stored files get a random name; the client's filename is
never reused.
"""

import io
import os
import re
import json
import time
import uuid
import hashlib
import secrets
import logging
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple
from PIL import Image, UnidentifiedImageError

from secureblog.exceptions import NotFoundError, SecurityViolation, StorageError, ValidationError
from secureblog.filestore import provision_directory, remove_file
from secureblog.sanitizer import InputSanitizer
from secureblog.scanners import ContentScanner, MetadataScanner, default_scanners
from secureblog.security_log import SecurityLog

# Configure logging
logger = logging.getLogger(__name__)

EXECUTABLE_EXTENSIONS = (
    "php", "phtml", "php3", "php4", "php5", "pht", "phar", "phps",
    "cgi", "pl", "exe", "sh", "bat", "com",
)

# Detected MIME type -> (allowed extensions, canonical first; Pillow format)
IMAGE_TYPES = {
    "image/jpeg": (("jpg", "jpeg"), "JPEG"),
    "image/png": (("png",), "PNG"),
    "image/gif": (("gif",), "GIF"),
    "image/webp": (("webp",), "WEBP"),
}

ALLOWED_EXTENSIONS = tuple(ext for exts, _ in IMAGE_TYPES.values() for ext in exts)

STORED_NAME_RE = re.compile(r"^[a-f0-9]{32}(_\d+)?(_thumb)?\.(jpg|jpeg|png|gif|webp)$")

UPLOAD_HTACCESS = """# Block direct access and script execution
Order Deny,Allow
Deny from all
Options -ExecCGI -Indexes
RemoveHandler .php .phtml .php3 .php4 .php5 .pht .phar .phps .cgi .pl
RemoveType .php .phtml .php3 .php4 .php5 .pht .phar .phps .cgi .pl
<FilesMatch "\\.(php|phtml|php3|php4|php5|pht|phar|phps|cgi|pl|exe|sh|bat|com)$">
    Deny from all
</FilesMatch>
"""


class UploadError(IntEnum):
    OK = 0
    INI_SIZE = 1
    FORM_SIZE = 2
    PARTIAL = 3
    NO_FILE = 4
    NO_TMP_DIR = 6
    CANT_WRITE = 7
    EXTENSION = 8


UPLOAD_ERROR_MESSAGES = {
    UploadError.INI_SIZE: "File exceeds the server upload limit",
    UploadError.FORM_SIZE: "File exceeds the form upload limit",
    UploadError.PARTIAL: "File was only partially uploaded",
    UploadError.NO_FILE: "No file was uploaded",
    UploadError.NO_TMP_DIR: "Missing temporary folder",
    UploadError.CANT_WRITE: "Failed to write file to disk",
    UploadError.EXTENSION: "File upload stopped by extension",
}


@dataclass
class UploadedFile:
    """
    One file as received from the transport.

    ``content`` is None when the request carried no upload at all;
    ``error`` uses the UploadError codes.
    """

    filename: str
    content: Optional[bytes]
    error: int = UploadError.OK
    content_type: str = ""

    @property
    def size(self) -> int:
        return len(self.content or b"")


def detect_mime(data: bytes) -> str:
    """MIME type from the leading magic bytes, ignoring anything the client declared."""
    if data.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if data.startswith((b"GIF87a", b"GIF89a")):
        return "image/gif"
    if len(data) >= 12 and data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return "application/octet-stream"


def decode_image(data: bytes, expected_format: str) -> Optional[Tuple[int, int]]:
    """
    Decode-check ``data`` with Pillow.

    Returns:
        Optional[Tuple[int, int]]: (width, height), or None if the bytes do
        not parse as an image of ``expected_format``
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            if image.format != expected_format:
                return None
            size = image.size
            image.verify()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as e:
        logger.debug(f"Image decode failed: {e}")
        return None
    return size


def read_exif(data: bytes) -> dict:
    """EXIF tags of a JPEG as a plain dict; empty if there are none or they cannot be parsed."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            exif = image.getexif()
            return {str(tag): value for tag, value in exif.items()}
    except (OSError, SyntaxError, ValueError) as e:
        logger.debug(f"EXIF read failed: {e}")
        return {}


class UploadGuard:
    """
    Validates, scans and stores uploaded images.

    Example:
        >>> guard = UploadGuard(settings, InputSanitizer())
        >>> result = guard.handle_upload(UploadedFile("photo.png", png_bytes))
        >>> result["url"]
        '/images/3f5c...e1.png'
    """

    def __init__(
        self,
        settings,
        sanitizer: InputSanitizer,
        scanners: Optional[Sequence[ContentScanner]] = None,
        metadata_scanner: Optional[ContentScanner] = None,
        security_log: Optional[SecurityLog] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.sanitizer = sanitizer
        self.scanners = list(scanners) if scanners is not None else default_scanners()
        self.metadata_scanner = metadata_scanner or MetadataScanner()
        self.security_log = security_log
        self.clock = clock
        self.upload_dir = settings.uploads_dir

    def initialize_directory(self) -> None:
        """
        Create the upload directory with execution-blocking guard files.

        Raises:
            OSError: If the directory cannot be created
        """
        provision_directory(self.upload_dir, UPLOAD_HTACCESS)

    def _url(self, filename: str) -> str:
        return f"{self.settings.image_url_prefix.rstrip('/')}/{filename}"

    # Validation pipeline

    def _validate_transport(self, upload: UploadedFile) -> None:
        if upload is None or upload.content is None:
            raise ValidationError("Invalid file upload")

        if upload.error != UploadError.OK:
            raise ValidationError(UPLOAD_ERROR_MESSAGES.get(upload.error, "Unknown upload error"))

        if upload.size > self.settings.max_upload_size:
            max_mb = self.settings.max_upload_size / (1024 * 1024)
            raise ValidationError(f"File too large. Maximum size: {max_mb:g}MB")

        if upload.size == 0:
            raise ValidationError("Uploaded file is empty")

    def _choose_extension(self, filename: str, mime: str) -> str:
        allowed, _ = IMAGE_TYPES[mime]
        _, dot, claimed = filename.rpartition(".")
        claimed = claimed.lower() if dot else ""
        if claimed in allowed:
            return claimed
        return allowed[0]

    @staticmethod
    def _has_double_extension(filename: str) -> bool:
        stem = filename.rsplit(".", 1)[0] if "." in filename else filename
        if "." not in stem:
            return False
        return any(part.lower() in EXECUTABLE_EXTENSIONS for part in stem.split("."))

    def inspect(self, data: bytes, filename: str) -> dict:
        """
        Run the content checks on ``data`` claimed to be ``filename``.

        Returns:
            dict: ``{"mime_type", "extension", "width", "height"}``

        Raises:
            SecurityViolation: With the reason of the first failing check
        """
        mime = detect_mime(data)
        if mime not in IMAGE_TYPES:
            raise SecurityViolation(f"Invalid MIME type: {mime}")

        _, pillow_format = IMAGE_TYPES[mime]
        dimensions = decode_image(data, pillow_format)
        if dimensions is None:
            raise SecurityViolation("Not a valid image file")

        extension = self._choose_extension(filename, mime)

        if self._has_double_extension(filename):
            raise SecurityViolation("Double extension detected")

        for scanner in self.scanners:
            reason = scanner.scan(data)
            if reason:
                raise SecurityViolation(reason)

        width, height = dimensions
        limit = self.settings.max_image_dimension
        if width > limit or height > limit:
            raise SecurityViolation("Image dimensions too large")

        if mime == "image/jpeg":
            exif = read_exif(data)
            if exif:
                serialized = json.dumps(exif, default=str).encode("utf-8")
                reason = self.metadata_scanner.scan(serialized)
                if reason:
                    raise SecurityViolation(reason)

        return {"mime_type": mime, "extension": extension, "width": width, "height": height}

    # Storage

    def _generate_filename(self, extension: str) -> str:
        seed = f"{uuid.uuid4().hex}{secrets.token_hex(8)}{self.clock()}"
        stem = hashlib.sha256(seed.encode("utf-8")).hexdigest()[:32]
        filename = f"{stem}.{extension}"
        counter = 1
        while (self.upload_dir / filename).exists():
            filename = f"{stem}_{counter}.{extension}"
            counter += 1
        return filename

    def _write(self, path: Path, data: bytes) -> None:
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
            os.chmod(path, 0o600)
        except OSError as e:
            logger.error(f"Error storing upload {path.name}: {e}")
            raise StorageError()

    def handle_upload(self, upload: UploadedFile, context=None) -> dict:
        """
        Validate and store one uploaded image.

        Args:
            upload: File received from the transport
            context: Request context used for the security log

        Returns:
            dict: ``{"success", "filename", "url", "path", "size", "dimensions"}``

        Raises:
            ValidationError: If the upload itself is missing, failed, empty or too big
            SecurityViolation: If a content check rejects the file
            StorageError: If the file cannot be written
        """
        self._validate_transport(upload)
        original_name = self.sanitizer.sanitize(upload.filename, "filename")
        logger.info(f"Validating upload: {original_name} ({upload.size} bytes)")

        try:
            checked = self.inspect(upload.content, upload.filename or "")
        except SecurityViolation as e:
            logger.warning(f"Upload rejected: {original_name}: {e.message}")
            if self.security_log:
                self.security_log.log_event("Malicious file upload blocked", original_name, context)
            raise SecurityViolation(f"Security violation detected. Upload blocked: {e.message}")

        self.initialize_directory()
        filename = self._generate_filename(checked["extension"])
        path = self.upload_dir / filename
        self._write(path, upload.content)

        logger.info(f"Image uploaded: {filename}")
        if self.security_log:
            self.security_log.log_event("Image uploaded", filename, context)

        return {
            "success": True,
            "filename": filename,
            "url": self._url(filename),
            "path": str(path),
            "size": upload.size,
            "dimensions": {"width": checked["width"], "height": checked["height"]},
        }

    # Stored images

    def _image_files(self) -> List[Path]:
        if not self.upload_dir.is_dir():
            return []
        return [
            path for path in self.upload_dir.iterdir()
            if path.is_file() and path.suffix.lstrip(".").lower() in ALLOWED_EXTENSIONS
        ]

    @staticmethod
    def _dimensions(path: Path) -> Tuple[int, int]:
        try:
            with Image.open(path) as image:
                return image.size
        except (OSError, SyntaxError, ValueError):
            return (0, 0)

    def _describe(self, path: Path) -> dict:
        stat = path.stat()
        width, height = self._dimensions(path)
        return {
            "filename": path.name,
            "url": self._url(path.name),
            "size": stat.st_size,
            "uploaded": int(stat.st_mtime),
            "dimensions": {"width": width, "height": height},
        }

    def list_images(self, limit: int = 50, offset: int = 0) -> List[dict]:
        """Stored images, newest first."""
        files = sorted(self._image_files(), key=lambda path: path.stat().st_mtime, reverse=True)
        return [self._describe(path) for path in files[offset:offset + limit]]

    def image_count(self) -> int:
        return len(self._image_files())

    def _stored_path(self, filename: str) -> Optional[Path]:
        filename = self.sanitizer.sanitize(filename, "filename")
        if not STORED_NAME_RE.match(filename):
            return None
        path = self.upload_dir / filename
        return path if path.is_file() else None

    def image_info(self, filename: str) -> Optional[dict]:
        path = self._stored_path(filename)
        if path is None:
            return None
        info = self._describe(path)
        info["path"] = str(path)
        info["mime_type"] = detect_mime(path.read_bytes()[:16])
        return info

    def resolve_image(self, filename: str) -> Tuple[Path, str]:
        """
        Locate a stored image for serving.

        The name must look like one this guard generated and the bytes must
        still decode as an allowed image type.

        Returns:
            Tuple[Path, str]: File path and MIME type

        Raises:
            NotFoundError: If the name is malformed, missing or no longer a valid image
        """
        path = self._stored_path(filename)
        if path is None:
            raise NotFoundError("Image not found")

        data = path.read_bytes()
        mime = detect_mime(data)
        if mime not in IMAGE_TYPES or decode_image(data, IMAGE_TYPES[mime][1]) is None:
            logger.warning(f"Stored file failed re-validation: {path.name}")
            raise NotFoundError("Image not found")
        return path, mime

    def delete_image(self, filename: str, context=None) -> None:
        """
        Raises:
            NotFoundError: If the image does not exist
        """
        path = self._stored_path(filename)
        if path is None or not remove_file(path):
            raise NotFoundError("File not found")

        logger.info(f"Image deleted: {path.name}")
        if self.security_log:
            self.security_log.log_event("Image deleted", path.name, context)

    def create_thumbnail(self, filename: str, max_width: int = 300, max_height: int = 300) -> dict:
        """
        Write a resized copy of a stored image as ``<name>_thumb.<ext>``.

        The aspect ratio is kept; the result fits inside max_width x max_height.

        Returns:
            dict: ``{"success", "filename", "url"}``

        Raises:
            NotFoundError: If the source image does not exist
            ValidationError: If the source cannot be decoded
            StorageError: If the thumbnail cannot be written
        """
        path = self._stored_path(filename)
        if path is None:
            raise NotFoundError("Source file not found")

        thumb_name = f"{path.stem}_thumb{path.suffix}"
        thumb_path = self.upload_dir / thumb_name

        try:
            with Image.open(path) as image:
                image_format = image.format
                width, height = image.size
                ratio = min(max_width / width, max_height / height)
                size = (max(1, int(width * ratio)), max(1, int(height * ratio)))
                thumbnail = image.resize(size)
        except (OSError, SyntaxError, ValueError, ZeroDivisionError) as e:
            logger.error(f"Thumbnail source unreadable: {path.name}: {e}")
            raise ValidationError("Invalid image file")

        if image_format not in ("JPEG", "PNG", "GIF", "WEBP"):
            raise ValidationError("Unsupported image type")

        options = {"JPEG": {"quality": 85}, "WEBP": {"quality": 85}, "PNG": {"compress_level": 8}}
        try:
            thumbnail.save(thumb_path, format=image_format, **options.get(image_format, {}))
            os.chmod(thumb_path, 0o600)
        except OSError as e:
            logger.error(f"Error saving thumbnail {thumb_name}: {e}")
            raise StorageError()

        logger.info(f"Thumbnail created: {thumb_name}")
        return {"success": True, "filename": thumb_name, "url": self._url(thumb_name)}
