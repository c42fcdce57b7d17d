"""Upload format detection and classification service.

This module classifies uploads as Excel workbooks or CSV files from the
declared MIME type, the file extension, and, as a last resort, magic bytes
(file content signatures).
"""

from pathlib import Path

import magic

from sheet_lookup.models import FileKind
from sheet_lookup.utils.exceptions import UnsupportedFormatError
from sheet_lookup.utils.logging import get_logger

logger = get_logger(__name__)

__all__ = [
    "FormatDetector",
    "UnsupportedFormatError",
    "EXTENSION_TO_KIND",
    "MIME_TO_KIND",
]


# Mapping of file extensions to file kinds
EXTENSION_TO_KIND: dict[str, FileKind] = {
    ".xlsx": FileKind.EXCEL,
    ".xls": FileKind.EXCEL,
    ".csv": FileKind.CSV,
}

# Mapping of accepted MIME types to file kinds
MIME_TO_KIND: dict[str, FileKind] = {
    "application/vnd.ms-excel": FileKind.EXCEL,
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": (
        FileKind.EXCEL
    ),
    "text/csv": FileKind.CSV,
    "application/csv": FileKind.CSV,
}


class FormatDetector:
    """Detects whether an upload is an Excel workbook or a CSV file.

    The declared MIME type wins, then the extension. Content sniffing is
    only consulted when neither identifies a supported kind.
    """

    def __init__(self) -> None:
        """Initialize the format detector with a magic instance."""
        self._magic = magic.Magic(mime=True)

    def detect(
        self,
        filename: str | None,
        declared_mime: str | None = None,
        content: bytes | None = None,
    ) -> FileKind:
        """Classify an upload.

        Args:
            filename: Original filename, used for extension-based detection.
            declared_mime: MIME type sent by the client, if any.
            content: File content for magic-byte detection.

        Returns:
            FileKind.EXCEL or FileKind.CSV.

        Raises:
            UnsupportedFormatError: If the upload is neither Excel nor CSV.
        """
        kind = self._kind_from_mime(declared_mime)
        if kind is None:
            kind = self._kind_from_extension(filename)
        if kind is None and content:
            sniffed = self._detect_mime_from_content(content)
            kind = self._kind_from_mime(sniffed)
            if kind is not None:
                logger.debug(
                    "Upload classified from content",
                    filename=filename,
                    detected_mime=sniffed,
                )

        if kind is None:
            raise UnsupportedFormatError(
                "Invalid file type. Only Excel (.xlsx, .xls) and CSV files "
                "are allowed.",
                detected_mime=declared_mime,
                filename=filename,
                details={"supported_extensions": self.get_supported_extensions()},
            )
        return kind

    def _detect_mime_from_content(self, content: bytes) -> str | None:
        """Detect MIME type from file content using magic bytes.

        Returns:
            Detected MIME type or None if detection fails.
        """
        try:
            detected: str = self._magic.from_buffer(content)
            return self._normalize_mime_type(detected)
        except Exception as e:
            logger.warning(
                "Magic detection failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

    @staticmethod
    def _normalize_mime_type(mime_type: str) -> str:
        """Normalize MIME type aliases to their canonical form."""
        normalizations: dict[str, str] = {
            "text/x-csv": "text/csv",
            "application/x-csv": "text/csv",
            "application/excel": "application/vnd.ms-excel",
            "application/x-excel": "application/vnd.ms-excel",
            "application/x-msexcel": "application/vnd.ms-excel",
        }
        return normalizations.get(mime_type, mime_type)

    @classmethod
    def _kind_from_mime(cls, mime_type: str | None) -> FileKind | None:
        if not mime_type:
            return None
        base = mime_type.split(";", 1)[0].strip().lower()
        return MIME_TO_KIND.get(cls._normalize_mime_type(base))

    @staticmethod
    def _kind_from_extension(filename: str | None) -> FileKind | None:
        if not filename:
            return None
        return EXTENSION_TO_KIND.get(Path(filename).suffix.lower())

    @staticmethod
    def get_supported_extensions() -> list[str]:
        """Get list of supported file extensions."""
        return sorted(EXTENSION_TO_KIND.keys())
