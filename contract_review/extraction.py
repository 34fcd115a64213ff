"""Text extraction from uploaded contract files."""
import html
import io
import logging
import mimetypes
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from pypdf import PasswordType, PdfReader

from contract_review.errors import ExtractionFailed, InvalidExtraction

logger = logging.getLogger(__name__)

# Scanned PDFs usually yield nothing, or a handful of stray characters
MIN_TEXT_LENGTH = 100
MIN_PRINTABLE_RATIO = 0.9
_WORD_RE = re.compile(r"[^\W\d_]{3,}")
_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
# Types that say nothing about the content; the file name decides instead
GENERIC_FILE_TYPES = (None, "", "application/octet-stream")


@dataclass
class ExtractedContent:
    """Plain text of a document plus basic metadata."""
    text: str
    num_pages: int
    info: Dict[str, Any] = field(default_factory=dict)


class TextExtractor:
    """Extracts plain text from PDF and text uploads."""

    def extract(
        self,
        data: bytes,
        file_type: Optional[str] = None,
        file_name: Optional[str] = None
    ) -> ExtractedContent:
        """Extract text from a document held in memory.

        Args:
            data: Raw file content
            file_type: MIME type recorded at upload, if known
            file_name: Original file name, used when file_type is generic

        Returns:
            ExtractedContent with text, page count and metadata

        Raises:
            ExtractionFailed: the document could not be parsed at all
        """
        if not data:
            raise ExtractionFailed("Empty document")

        if file_type in GENERIC_FILE_TYPES and file_name:
            file_type = mimetypes.guess_type(file_name)[0] or file_type

        if file_type and file_type.startswith("text/"):
            return ExtractedContent(text=data.decode("utf-8", errors="replace"), num_pages=1)

        if file_type not in GENERIC_FILE_TYPES + ("application/pdf",) \
                and not data.startswith(b"%PDF"):
            raise ExtractionFailed(f"Unsupported file type: {file_type}")

        return self._extract_pdf(data)

    def _extract_pdf(self, data: bytes) -> ExtractedContent:
        try:
            reader = PdfReader(io.BytesIO(data))
        except Exception as e:
            logger.error(f"Error reading PDF: {e}")
            raise ExtractionFailed(f"Failed to read PDF: {e}") from e

        if reader.is_encrypted:
            try:
                decrypted = reader.decrypt("")
            except Exception as e:
                raise ExtractionFailed(f"Cannot decrypt PDF: {e}") from e
            if decrypted == PasswordType.NOT_DECRYPTED:
                raise ExtractionFailed("PDF is password protected")

        try:
            num_pages = len(reader.pages)
        except Exception as e:
            raise ExtractionFailed(f"Failed to read PDF pages: {e}") from e

        page_texts = []
        for page_num, page in enumerate(reader.pages, start=1):
            try:
                page_text = page.extract_text()
            except Exception as e:
                logger.error(f"Error extracting text from page {page_num}: {e}")
                continue
            if page_text:
                page_texts.append(page_text)

        return ExtractedContent(
            text="\n\n".join(page_texts),
            num_pages=num_pages,
            info=self._metadata(reader),
        )

    @staticmethod
    def _metadata(reader: PdfReader) -> Dict[str, Any]:
        """Title, author and creation date, when the PDF carries them."""
        metadata = reader.metadata
        if not metadata:
            return {}

        info: Dict[str, Any] = {}
        if metadata.title:
            info["title"] = str(metadata.title)
        if metadata.author:
            info["author"] = str(metadata.author)
        try:
            if metadata.creation_date:
                info["creation_date"] = metadata.creation_date.isoformat()
        except Exception as e:
            # Malformed date strings are common in producer metadata
            logger.debug(f"Ignoring unparseable PDF creation date: {e}")
        return info


def is_valid_extraction(text: str) -> bool:
    """Whether extracted text is usable for analysis.

    False for empty or short text, text dominated by control characters,
    and text without a single real word (typical of scanned PDFs).
    """
    stripped = text.strip() if text else ""
    if len(stripped) < MIN_TEXT_LENGTH:
        return False

    printable = sum(1 for ch in stripped if ch.isprintable() or ch.isspace())
    if printable / len(stripped) < MIN_PRINTABLE_RATIO:
        return False

    return _WORD_RE.search(stripped) is not None


def ensure_valid_extraction(text: str) -> str:
    """Return text unchanged, or raise InvalidExtraction when it is unusable."""
    if not is_valid_extraction(text):
        raise InvalidExtraction(f"Extracted text is not usable ({len(text.strip())} characters)")
    return text


def text_to_html(text: str) -> str:
    """Convert plain text to paragraphs, keeping line breaks."""
    paragraphs = []
    for block in _PARAGRAPH_SPLIT_RE.split(text.replace("\r\n", "\n")):
        lines = [html.escape(line.strip()) for line in block.split("\n") if line.strip()]
        if lines:
            paragraphs.append(f"<p>{'<br>'.join(lines)}</p>")
    return "\n".join(paragraphs)
