from __future__ import annotations

import logging
import os
import re
import uuid
from dataclasses import dataclass

from prepboard.config import settings
from prepboard.errors import InvalidInput

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {"jpeg", "jpg", "png", "gif", "pdf", "doc", "docx", "txt", "zip", "rar"}
_ALLOWED_MIME_RE = re.compile(r"jpeg|jpg|png|gif|pdf|doc|docx|msword|officedocument|text|zip|rar|octet-stream")


@dataclass
class StoredBlob:
  key: str
  size: int
  type: str
  path: str


class LocalBlobStore:
  """Attachment blobs on the local filesystem under `root`."""

  def __init__(self, root: str | None = None, *, max_bytes: int | None = None) -> None:
    self.root = root or settings.upload_dir
    self.max_bytes = int(max_bytes if max_bytes is not None else settings.max_attachment_bytes)

  def check(self, filename: str, content_type: str | None, size: int) -> None:
    ext = os.path.splitext(filename or "")[1].lower().lstrip(".")
    if ext not in ALLOWED_EXTENSIONS:
      raise InvalidInput("Only images, PDFs, documents, text files and archives are allowed")
    if content_type and not _ALLOWED_MIME_RE.search(content_type.lower()):
      raise InvalidInput("Only images, PDFs, documents, text files and archives are allowed")
    if size > self.max_bytes:
      raise InvalidInput(f"Attachment too large (max {self.max_bytes} bytes)")

  def path_for(self, key: str) -> str:
    return os.path.join(self.root, key)

  def store(self, filename: str, content_type: str | None, data: bytes) -> StoredBlob:
    self.check(filename, content_type, len(data))
    os.makedirs(self.root, exist_ok=True)
    ext = os.path.splitext(filename or "")[1].lower()
    key = f"{uuid.uuid4().hex}{ext}"
    path = self.path_for(key)
    with open(path, "wb") as f:
      f.write(data)
    return StoredBlob(
      key=key,
      size=len(data),
      type=content_type or "application/octet-stream",
      path=path,
    )

  def delete(self, key: str) -> None:
    try:
      os.remove(self.path_for(key))
    except FileNotFoundError:
      logger.info("blob %s already gone", key)


blob_store = LocalBlobStore()
