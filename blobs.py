import logging
from pathlib import Path
from typing import Optional

from config import get_settings
from errors import BudgetError, ErrorKind

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {"image/jpeg": ".jpg", "image/png": ".png", "image/webp": ".webp"}


class LocalBlobStore:
    """Profile image storage in a directory, served under a public base URL."""

    def __init__(self, root: Optional[Path] = None, base_url: Optional[str] = None) -> None:
        settings = get_settings()
        self.root = Path(root or settings.blob_dir)
        self.base_url = (base_url or settings.blob_base_url).rstrip("/")

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise BudgetError(ErrorKind.invalid_input, "Invalid blob key")
        return self.root / key

    def upload(self, key: str, data: bytes, content_type: str) -> str:
        if content_type not in ALLOWED_CONTENT_TYPES:
            raise BudgetError(
                ErrorKind.invalid_input, f"Unsupported content type: {content_type}"
            )
        if not data:
            raise BudgetError(ErrorKind.invalid_input, "Empty file")
        path = self._path(key)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            logger.error(f"blob_upload_failed: key={key} error={exc}")
            raise BudgetError(
                ErrorKind.store_unavailable, "Failed to store image, please retry"
            ) from exc
        logger.info(f"blob_uploaded: key={key} bytes={len(data)}")
        return self.get_public_url(key)

    def get_public_url(self, key: str) -> str:
        self._path(key)
        return f"{self.base_url}/{key}"
