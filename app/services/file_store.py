# =====================================================
# FILE: app/services/file_store.py
# Document byte storage behind a narrow interface
# =====================================================

import logging
import os
from abc import ABC, abstractmethod
from urllib.parse import urlparse

from app.core.exceptions import NotFoundError

logger = logging.getLogger(__name__)


class FileStore(ABC):
    @abstractmethod
    def read(self, file_url: str) -> bytes:
        ...


class LocalFileStore(FileStore):
    """
    Reads documents from a directory on disk. `file_url` may be a bare
    relative path or a URL whose path is relative to the storage root.
    """

    def __init__(self, root_dir: str):
        self.root_dir = os.path.abspath(root_dir)

    def _resolve(self, file_url: str) -> str:
        relative = urlparse(file_url).path if "://" in file_url else file_url
        path = os.path.abspath(os.path.join(self.root_dir, relative.lstrip("/\\")))
        if os.path.commonpath([self.root_dir, path]) != self.root_dir:
            raise NotFoundError(f"File path escapes storage root: {file_url}", "Document file not found.")
        return path

    def read(self, file_url: str) -> bytes:
        path = self._resolve(file_url)
        if not os.path.isfile(path):
            logger.error(f"Document file missing: {path}")
            raise NotFoundError(f"File not found: {file_url}", "Document file not found.")
        with open(path, "rb") as fh:
            return fh.read()
