"""
File upload handling for ``{"type": "file"}`` columns.

Uploads arrive as werkzeug FileStorage objects (``request.files``). The
MIME type is sniffed from the content with python-magic rather than
trusting the browser, the file is stored under a unique name and the
column receives its public URL.

Column metadata understood here:
    allowed_mimes  list of accepted MIME types (empty accepts anything)
    max_size       maximum size in bytes
    max_files      maximum number of files for multi-file fields (default 10)
"""

# flake8: noqa: E501


import os
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence

import magic
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from dynamiccrud.exceptions import FileUploadError
from dynamiccrud.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_MAX_SIZE = 5 * 1024 * 1024  # 5MB
DEFAULT_MAX_FILES = 10


def format_bytes(size: int) -> str:
    """
    Human-readable size.

    Example:
        format_bytes(5242880)  # "5.00 MB"
    """
    if size >= 1024 ** 3:
        return f"{size / 1024 ** 3:,.2f} GB"
    if size >= 1024 ** 2:
        return f"{size / 1024 ** 2:,.2f} MB"
    if size >= 1024:
        return f"{size / 1024:,.2f} KB"
    return f"{size} bytes"


class FileUploadHandler:
    """Stores uploaded files and returns their public URLs."""

    def __init__(
        self,
        upload_dir: str = "uploads",
        allowed_mimes: Sequence[str] = (),
        max_size: int = DEFAULT_MAX_SIZE,
        url_prefix: str = "/uploads/",
    ):
        """
        Initialize handler.

        Args:
            upload_dir: Directory files are written to (created if missing)
            allowed_mimes: Default accepted MIME types
            max_size: Default size limit in bytes
            url_prefix: Prefix of the URL stored in the column

        Raises:
            FileUploadError: If the directory cannot be created or written
        """
        self.upload_dir = upload_dir.rstrip("/\\") or "."
        self.allowed_mimes = list(allowed_mimes)
        self.max_size = max_size
        self.url_prefix = url_prefix if url_prefix.endswith("/") else f"{url_prefix}/"
        # Paths written by this handler, removed again if the transaction fails
        self.saved_paths: List[str] = []

        try:
            os.makedirs(self.upload_dir, mode=0o755, exist_ok=True)
        except OSError as e:
            raise FileUploadError(f"Could not create upload directory {self.upload_dir}: {e}") from e

        if not os.access(self.upload_dir, os.W_OK):
            raise FileUploadError(f"Upload directory is not writable: {self.upload_dir}")

    # ==================== Uploads ====================

    def handle_upload(self, files, field_name: str, metadata: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """
        Store the file sent for a field.

        Args:
            files: request.files (or any mapping of field name to FileStorage)
            field_name: Form field name
            metadata: Column metadata

        Returns:
            Public URL, or None when no file was sent
        """
        if not files:
            return None
        file = files.get(field_name)
        if file is None or not file.filename:
            return None
        return self.process_file(file, metadata or {})

    def process_file(self, file: FileStorage, metadata: Optional[Dict[str, Any]] = None) -> str:
        """
        Validate and store one file.

        Raises:
            FileUploadError: On size or MIME violations, or if the file cannot be saved
        """
        metadata = metadata or {}
        allowed_mimes = metadata.get("allowed_mimes") or self.allowed_mimes
        max_size = int(metadata.get("max_size") or self.max_size)

        size = self._size_of(file)
        if size > max_size:
            raise FileUploadError(f"File exceeds the maximum allowed size of {format_bytes(max_size)}")

        if allowed_mimes:
            mime_type = self.detect_mime_type(file)
            if mime_type not in allowed_mimes:
                raise FileUploadError(f"File type not allowed ({mime_type}). Allowed: {', '.join(allowed_mimes)}")

        extension = os.path.splitext(secure_filename(file.filename or ""))[1].lstrip(".").lower()
        filename = self.generate_unique_filename(extension)
        destination = os.path.join(self.upload_dir, filename)

        try:
            file.save(destination)
        except OSError as e:
            raise FileUploadError(f"Could not save uploaded file: {e}") from e

        self.saved_paths.append(destination)
        logger.info("file_uploaded", filename=filename, size=size)
        return f"{self.url_prefix}{filename}"

    def handle_multiple_uploads(self, files, field_name: str, metadata: Optional[Dict[str, Any]] = None) -> List[str]:
        """
        Store every file sent for a multi-file field.

        Raises:
            FileUploadError: When more than max_files files were sent
        """
        if not files or not hasattr(files, "getlist"):
            return []
        metadata = metadata or {}
        sent = [f for f in files.getlist(field_name) if f is not None and f.filename]
        max_files = int(metadata.get("max_files") or DEFAULT_MAX_FILES)

        if len(sent) > max_files:
            raise FileUploadError(f"At most {max_files} files allowed")

        return [self.process_file(f, metadata) for f in sent]

    # ==================== Helpers ====================

    @staticmethod
    def _size_of(file: FileStorage) -> int:
        stream = file.stream
        stream.seek(0, os.SEEK_END)
        size = stream.tell()
        stream.seek(0)
        return size

    @staticmethod
    def detect_mime_type(file: FileStorage) -> str:
        """Detect MIME type from file content."""
        content = file.stream.read(2048)
        file.stream.seek(0)
        return magic.from_buffer(content, mime=True)

    @staticmethod
    def generate_unique_filename(extension: str) -> str:
        """Unique name: ``<13 hex chars>_<unix time>.<ext>``."""
        name = f"{uuid.uuid4().hex[:13]}_{int(time.time())}"
        return f"{name}.{extension}" if extension else name

    def path_for_url(self, url: str) -> Optional[str]:
        """Map a stored URL back to its file path (None for foreign URLs)."""
        if not url or not url.startswith(self.url_prefix):
            return None
        name = os.path.basename(url[len(self.url_prefix):])
        return os.path.join(self.upload_dir, name) if name else None

    def delete_file(self, path: str) -> bool:
        """Delete a stored file. Returns False if it did not exist."""
        if path and os.path.isfile(path):
            os.remove(path)
            logger.info("file_deleted", path=path)
            return True
        return False

    def discard_saved_files(self) -> int:
        """Remove the files saved by this handler (after a rollback)."""
        removed = sum(1 for path in self.saved_paths if self.delete_file(path))
        self.saved_paths = []
        return removed
