"""
File Security Service - checks for gallery and background image uploads.

Checks, in the order the upload stage applies them:
1. Size limit (global MAX_FILE_SIZE)
2. Real MIME type from magic bytes (python-magic), never the client's claim
3. Heuristic threat scan: executable signatures, script in images,
   suspicious extensions, zip bombs, null bytes, path traversal
4. SHA-256 blacklist

Filenames are never trusted: `sanitize_filename` strips traversal and
reserved characters, `generate_secure_filename` adds a timestamp and a
random suffix.
"""

import hashlib
import re
import secrets
import time
from dataclasses import dataclass, field
from typing import Any

from invitegate.config import settings
from invitegate.infrastructure.observability.logging import get_logger
from invitegate.models.domain.security_domain import FileScanResult

logger = get_logger(__name__)

EXECUTABLE_SIGNATURES = (
    b"\x4d\x5a",  # PE/Windows
    b"\x7f\x45\x4c\x46",  # ELF
    b"\xca\xfe\xba\xbe",  # Java class
    b"\xfe\xed\xfa\xce",  # Mach-O
)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".svg"}

SUSPICIOUS_EXTENSIONS = {
    ".exe", ".bat", ".cmd", ".com", ".pif", ".scr", ".vbs", ".js", ".jar",
    ".php", ".asp", ".aspx", ".jsp", ".sh", ".ps1", ".py", ".rb", ".pl",
}  # fmt: skip

PATH_TRAVERSAL_PATTERNS = ["../", "..\\", "~/", "/etc/", "/var/", "/sys/"]

MAX_FILENAME_LENGTH = 255
FALLBACK_MIME_TYPE = "application/octet-stream"


@dataclass
class UploadedFile:
    """An upload as received by the route, before any checks."""

    filename: str
    content: bytes
    content_type: str | None = None
    security_metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.content)


def _extension(filename: str) -> str:
    dot = filename.rfind(".")
    return filename[dot:].lower() if dot != -1 else ""


class FileSecurityService:
    def __init__(
        self,
        max_file_size: int | None = None,
        blacklisted_hashes: set[str] | None = None,
    ):
        self.max_file_size = max_file_size or settings.MAX_FILE_SIZE
        self.blacklisted_hashes = (
            blacklisted_hashes
            if blacklisted_hashes is not None
            else set(settings.BLACKLISTED_FILE_HASHES)
        )

    @staticmethod
    def generate_file_hash(content: bytes) -> str:
        return hashlib.sha256(content).hexdigest()

    @staticmethod
    def detect_mime_type(content: bytes) -> str:
        """Sniff the MIME type from the file header bytes."""
        import magic

        try:
            return magic.from_buffer(content[:2048], mime=True) or FALLBACK_MIME_TYPE
        except magic.MagicException as e:
            logger.error("Error detecting file type", error=str(e))
            return FALLBACK_MIME_TYPE

    def validate_file_size(self, size: int, max_size: int | None = None) -> str | None:
        """Return an error message when the file is too large."""
        limit = max_size or self.max_file_size
        if size > limit:
            limit_mb = limit / 1024 / 1024
            return f"File size exceeds maximum allowed size of {limit_mb:g}MB"
        return None

    def is_blacklisted(self, file_hash: str) -> bool:
        return file_hash in self.blacklisted_hashes

    @staticmethod
    def is_image_file(filename: str) -> bool:
        return _extension(filename) in IMAGE_EXTENSIONS

    def scan_file(self, content: bytes, filename: str) -> FileScanResult:
        """Heuristic scan; confidence starts at 100 and drops per threat."""
        threats: list[str] = []
        confidence = 100

        for signature in EXECUTABLE_SIGNATURES:
            if content.startswith(signature):
                threats.append("Executable file detected")
                confidence -= 50

        if self.is_image_file(filename):
            head = content[:1024].decode("utf-8", errors="ignore")
            if "<script" in head or "javascript:" in head:
                threats.append("Potential script content in image")
                confidence -= 40

        extension = _extension(filename)
        if extension in SUSPICIOUS_EXTENSIONS:
            threats.append(f"Suspicious file extension: {extension}")
            confidence -= 30

        if filename.lower().endswith(".zip") and len(content) < 1024:
            threats.append("Potential zip bomb detected")
            confidence -= 25

        if "\0" in filename:
            threats.append("Null bytes in filename")
            confidence -= 20

        for pattern in PATH_TRAVERSAL_PATTERNS:
            if pattern in filename:
                threats.append(f"Path traversal pattern detected: {pattern}")
                confidence -= 15

        return FileScanResult(is_safe=not threats, threats=threats, confidence=max(0, confidence))

    @staticmethod
    def sanitize_filename(filename: str) -> str:
        sanitized = filename.replace("..", "")
        sanitized = re.sub(r"[/\\]", "_", sanitized)
        sanitized = sanitized.replace("\0", "")
        sanitized = re.sub(r'[<>:"|?*]', "_", sanitized)

        if len(sanitized) > MAX_FILENAME_LENGTH:
            dot = sanitized.rfind(".")
            extension = sanitized[dot:] if dot != -1 else ""
            stem = sanitized[:dot] if dot != -1 else sanitized
            sanitized = stem[: MAX_FILENAME_LENGTH - len(extension)] + extension

        if not sanitized.strip():
            sanitized = f"file_{int(time.time() * 1000)}"

        return sanitized

    def generate_secure_filename(self, original_name: str) -> str:
        sanitized = self.sanitize_filename(original_name)
        dot = sanitized.rfind(".")
        stem, extension = (sanitized[:dot], sanitized[dot:]) if dot != -1 else (sanitized, "")
        return f"{stem}_{int(time.time() * 1000)}_{secrets.token_hex(4)}{extension}"

    def build_metadata(
        self,
        upload: UploadedFile,
        detected_type: str,
        scan: FileScanResult | None,
        user_id: str | None,
        ip: str | None,
    ) -> dict[str, Any]:
        return {
            "original_name": upload.filename,
            "sanitized_filename": self.sanitize_filename(upload.filename),
            "detected_type": detected_type,
            "size": upload.size,
            "hash": self.generate_file_hash(upload.content),
            "scan_result": scan.model_dump() if scan else None,
            "uploaded_at": time.time(),
            "uploaded_by": user_id,
            "ip": ip,
        }


file_security_service = FileSecurityService()
