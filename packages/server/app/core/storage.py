"""
Local filesystem storage for organization logos.
"""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Optional

import structlog

from app.core.config import get_settings

log = structlog.get_logger()
settings = get_settings()

CONTENT_TYPE_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
}


def validate_logo(content_type: Optional[str], size_bytes: int) -> list[str]:
    """
    Validate a logo upload before anything is stored.

    Returns list of validation errors (empty if valid).
    """
    errors = []

    if content_type not in settings.logo_allowed_types:
        errors.append("Allowed formats: PNG, JPG, WEBP")

    if size_bytes > settings.logo_max_size_bytes:
        max_mb = settings.logo_max_size_bytes / (1024 * 1024)
        errors.append(f"Maximum size is {max_mb:.0f}MB")

    return errors


class LogoStorage:
    """Stores logo files under ``media_root`` and maps them to public URLs."""

    def __init__(self, root: str | Path | None = None, base_url: str | None = None):
        self.root = Path(root or settings.media_root)
        self.base_url = (base_url or settings.media_url).rstrip("/")

    def generate_key(self, org_id: uuid.UUID, content_type: str) -> str:
        ext = CONTENT_TYPE_EXTENSIONS.get(content_type, ".png")
        return f"logos/{org_id}/{uuid.uuid4().hex[:12]}{ext}"

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def key_for(self, url: str) -> Optional[str]:
        prefix = f"{self.base_url}/"
        if not url.startswith(prefix):
            return None
        return url[len(prefix):]

    def save(self, org_id: uuid.UUID, content: bytes, content_type: str) -> str:
        """Write the file and return its public URL."""
        key = self.generate_key(org_id, content_type)
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        log.info("storage.saved", key=key, size_bytes=len(content))
        return self.url_for(key)

    def delete(self, url: str) -> None:
        """Delete a previously stored file. URLs outside our media root are ignored."""
        key = self.key_for(url)
        if key is None:
            return
        try:
            (self.root / key).unlink(missing_ok=True)
        except OSError as e:
            log.warning("storage.delete_failed", key=key, error=str(e))


def get_logo_storage() -> LogoStorage:
    """FastAPI dependency; overridden in tests."""
    return LogoStorage()
