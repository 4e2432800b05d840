"""Result sanitizer for tool output re-entering model context.

Tool results can carry screenshots, page dumps and other payloads that would
blow the model's context window if echoed back verbatim. The sanitizer walks
a result recursively, writes base64 images to disk and swaps them for a short
marker, and truncates oversized strings. Running it on its own output is a
no-op.
"""

import base64
import binascii
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

logger = logging.getLogger(__name__)

SAVED_MARKER = "[BINARY_SAVED_TO: {filename}]"
FAILED_MARKER = "[BINARY_SAVE_FAILED: {message}]"
TRUNCATION_MARKER = "...[truncated]"

_DATA_URL = re.compile(r"^data:image/([A-Za-z0-9.+-]+);base64,", re.IGNORECASE)
_BASE64_BODY = re.compile(r"^[A-Za-z0-9+/\r\n]+={0,2}$")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9]")

# Leading bytes of the image formats tools commonly return
_MAGIC_NUMBERS = (
    (b"\x89PNG\r\n\x1a\n", "png"),
    (b"\xff\xd8\xff", "jpg"),
    (b"GIF87a", "gif"),
    (b"GIF89a", "gif"),
    (b"RIFF", "webp"),
)

_MIME_EXTENSIONS = {"jpeg": "jpg", "svg+xml": "svg"}

# Field names that hold images even when the payload has no recognisable header
IMAGE_KEYS = frozenset({"screenshot", "image", "thumbnail"})


class ResultSanitizer:
    """Bounds the size of tool results before they are sent back to a model.

    Attributes:
        output_dir: Directory that receives extracted binary files
        max_string_length: Strings longer than this are truncated
        html_max_length: Threshold used for ``html`` fields instead
        keep_prefix: Characters preserved in front of the truncation marker
        min_binary_length: Shortest string considered as a raw base64 image
    """

    def __init__(
        self,
        output_dir: Union[str, Path] = ".",
        max_string_length: int = 5000,
        html_max_length: int = 10000,
        keep_prefix: int = 2000,
        min_binary_length: int = 1000,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.max_string_length = max_string_length
        self.html_max_length = html_max_length
        self.keep_prefix = keep_prefix
        self.min_binary_length = min_binary_length

    def sanitize(self, result: Any) -> Any:
        """Return a sanitized copy of a tool result.

        Args:
            result: Any JSON-friendly value

        Returns:
            The same structure with binary payloads replaced by markers and
            long strings truncated
        """
        return self._sanitize_value(result, key=None, source=None)

    def _sanitize_value(self, value: Any, key: Optional[str], source: Optional[str]) -> Any:
        if isinstance(value, dict):
            return self._sanitize_dict(value, source)
        if isinstance(value, list):
            return [self._sanitize_value(item, key, source) for item in value]
        if isinstance(value, str):
            binary = self._detect_image(value, key)
            if binary is not None:
                marker, _ = self._save_binary(binary, key, source, len(value))
                return marker
            return self._truncate(value, key)
        return value

    def _sanitize_dict(self, data: Dict[str, Any], source: Optional[str]) -> Dict[str, Any]:
        url = data.get("url")
        if isinstance(url, str) and url:
            source = url

        sanitized: Dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(value, str):
                binary = self._detect_image(value, key)
                if binary is not None:
                    marker, path = self._save_binary(binary, key, source, len(value))
                    sanitized[key] = marker
                    if path is not None:
                        sanitized[f"{key}Saved"] = True
                        sanitized[f"{key}Path"] = path
                        sanitized[f"{key}Size"] = f"{round(len(value) * 0.75)} bytes"
                    continue
            sanitized[key] = self._sanitize_value(value, key, source)
        return sanitized

    def _detect_image(self, value: str, key: Optional[str]) -> Optional[Tuple[str, str]]:
        """Return (base64 payload, extension) if ``value`` looks like an image."""
        match = _DATA_URL.match(value)
        if match:
            subtype = match.group(1).lower()
            return value[match.end():], _MIME_EXTENSIONS.get(subtype, subtype)

        if len(value) < self.min_binary_length or not _BASE64_BODY.match(value):
            return None

        extension = self._sniff_extension(value)
        if extension is None and key is not None and key.lower() in IMAGE_KEYS:
            extension = "png"
        if extension is None:
            return None
        return value, extension

    @staticmethod
    def _sniff_extension(value: str) -> Optional[str]:
        try:
            head = base64.b64decode(value[:24], validate=False)
        except (binascii.Error, ValueError):
            return None
        for magic, extension in _MAGIC_NUMBERS:
            if head.startswith(magic):
                return extension
        return None

    def _save_binary(
        self,
        binary: Tuple[str, str],
        key: Optional[str],
        source: Optional[str],
        original_length: int,
    ) -> Tuple[str, Optional[str]]:
        payload, extension = binary
        try:
            data = base64.b64decode(payload, validate=False)
            filename = self._filename(key or "binary", source, extension)
            self.output_dir.mkdir(parents=True, exist_ok=True)
            path = self.output_dir / filename
            path.write_bytes(data)
        except Exception as e:
            logger.warning("Failed to save binary tool output", extra={
                "field": key,
                "error": str(e)
            })
            return FAILED_MARKER.format(message=e), None

        logger.debug("Saved binary tool output", extra={
            "field": key,
            "path": str(path),
            "original_length": original_length
        })
        return SAVED_MARKER.format(filename=filename), filename

    def _filename(self, key: str, source: Optional[str], extension: str) -> str:
        source_part = _UNSAFE_CHARS.sub("_", source)[:30] if source else "webpage"
        key_part = _UNSAFE_CHARS.sub("_", key)[:30] or "binary"
        timestamp = re.sub(r"[:.]", "-", datetime.now().isoformat())
        stem = f"{key_part}_{source_part}_{timestamp}"
        filename = f"{stem}.{extension}"
        counter = 1
        while (self.output_dir / filename).exists():
            filename = f"{stem}-{counter}.{extension}"
            counter += 1
        return filename

    def _truncate(self, value: str, key: Optional[str]) -> str:
        limit = self.html_max_length if key == "html" else self.max_string_length
        if len(value) <= limit:
            return value
        return value[:self.keep_prefix] + TRUNCATION_MARKER
