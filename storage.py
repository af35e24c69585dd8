import io
import logging
import re
import secrets
from pathlib import Path
from time import time
from typing import Iterable, Optional

from fastapi import UploadFile
from PIL import Image, UnidentifiedImageError

from config import ALLOWED_FILE_TYPES, MAX_FILE_SIZE, UPLOAD_DIR
from errors import InvalidArgument, NotFound

logger = logging.getLogger(__name__)

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]+")
_IMAGE_TYPES = {"jpg": "JPEG", "jpeg": "JPEG", "png": "PNG"}


def _detect_file_ext(data: bytes) -> Optional[str]:
    if data.startswith(b"%PDF-"):
        return "pdf"
    if data.startswith(b"\xff\xd8\xff"):
        return "jpg"
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png"
    return None


async def _read_limited_upload(upload: UploadFile, max_bytes: int) -> Optional[bytes]:
    chunks = []
    total = 0
    while True:
        chunk = await upload.read(1024 * 1024)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


def _extension(filename: str) -> str:
    return Path(filename or "").suffix.lstrip(".").lower()


class FileStore:
    """Blob store for report files, kept as flat files under ``root``.

    A storage reference is the generated file name; it never contains a
    directory component.
    """

    def __init__(
        self,
        root=None,
        max_size: int = MAX_FILE_SIZE,
        allowed_types: Optional[Iterable[str]] = None,
    ):
        self.root = Path(root or UPLOAD_DIR)
        self.max_size = max_size
        self.allowed_types = [t.lower() for t in (allowed_types or ALLOWED_FILE_TYPES)]

    def open(self):
        self.root.mkdir(parents=True, exist_ok=True)
        return self

    def validate(self, data: bytes, filename: str) -> str:
        """Check size, extension and content; return the normalized extension."""
        if len(data) > self.max_size:
            raise InvalidArgument(f"File exceeds the maximum size of {self.max_size} bytes")
        if not data:
            raise InvalidArgument("File is empty")
        ext = _extension(filename)
        if ext not in self.allowed_types:
            raise InvalidArgument(
                "File type not allowed. Allowed types: " + ", ".join(self.allowed_types)
            )
        detected = _detect_file_ext(data)
        canonical = "jpg" if ext == "jpeg" else ext
        if detected is not None and detected != canonical:
            raise InvalidArgument("File content does not match its extension")
        if ext in _IMAGE_TYPES:
            # Reject truncated or disguised images before they reach disk.
            try:
                with Image.open(io.BytesIO(data)) as img:
                    if img.format != _IMAGE_TYPES[ext]:
                        raise InvalidArgument("File content does not match its extension")
                    img.verify()
            except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError):
                raise InvalidArgument("Could not process image")
        elif ext == "pdf" and detected != "pdf":
            raise InvalidArgument("File content does not match its extension")
        return ext

    def _path(self, ref: str) -> Path:
        if not ref or Path(ref).name != ref:
            raise NotFound("File not found")
        return self.root / ref

    def write(self, data: bytes, filename: str) -> str:
        """Store already-validated bytes under a fresh reference; see ``validate``."""
        stem = _SAFE_NAME_RE.sub("_", Path(filename).stem)[:80] or "report"
        ref = f"{stem}-{int(time() * 1000)}-{secrets.token_hex(4)}.{_extension(filename)}"
        self.root.mkdir(parents=True, exist_ok=True)
        (self.root / ref).write_bytes(data)
        return ref

    def read(self, ref: str) -> bytes:
        path = self.path_for(ref)
        return path.read_bytes()

    def path_for(self, ref: str) -> Path:
        path = self._path(ref)
        if not path.is_file():
            raise NotFound("File not found")
        return path

    def delete(self, ref: str) -> bool:
        """Remove a stored file. Returns False when it was already gone."""
        try:
            self._path(ref).unlink()
        except (FileNotFoundError, NotFound):
            return False
        return True
