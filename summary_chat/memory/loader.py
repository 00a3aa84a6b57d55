# summary_chat/memory/loader.py

"""
Content extraction for chat submissions.

Architecture contract:
extractor → sizing policy → (retrieval index) → message rows

Supports:
- PDF uploads (pypdf)
- Single-token URLs (requests + BeautifulSoup scrape)
- Plain text

Production guarantees:
- FastAPI async-safe (blocking parsers run in the default executor)
- Link failures degrade to plain text instead of aborting
- File content is ordered before the accompanying note
"""

import asyncio
import io
import logging
import re
from dataclasses import dataclass
from typing import List, Optional

import requests
from bs4 import BeautifulSoup
from pypdf import PdfReader

from summary_chat.config import (
    LINK_FETCH_TIMEOUT_SECONDS,
    LINK_FETCH_USER_AGENT,
    MAX_FILE_SIZE_MB,
)
from summary_chat.db.models import ContentKind
from summary_chat.errors import (
    EmptyContent,
    EmptyFile,
    FetchError,
    FileTooLarge,
    InvalidFileType,
    PdfParseError,
)

logger = logging.getLogger(__name__)


# Scheme optional, dot-delimited host, optional port / path / query
URL_PATTERN = re.compile(
    r"^(https?://)?([\w-]+\.)+[a-z]{2,}(:\d+)?([/?#]\S*)?$",
    re.IGNORECASE,
)

FETCH_FAILURE_NOTE = "(Note: the content of this link could not be retrieved: {reason})"


@dataclass
class ExtractedContent:
    kind: ContentKind
    text: str
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    link_url: Optional[str] = None
    fetch_failed: bool = False


@dataclass
class UploadedFile:
    """Raw file part of a submission."""
    data: bytes
    media_type: Optional[str]
    file_name: Optional[str] = None


# ============================================================
# CLASSIFICATION
# ============================================================

def is_link(text: str) -> bool:

    candidate = (text or "").strip()

    if not candidate or any(ch.isspace() for ch in candidate):
        return False

    return URL_PATTERN.match(candidate) is not None


def normalize_url(url: str) -> str:

    url = url.strip()

    if not re.match(r"^https?://", url, re.IGNORECASE):
        url = f"https://{url}"

    return url


# ============================================================
# CLEAN HTML → TEXT
# ============================================================

def extract_clean_text(html: str) -> str:

    soup = BeautifulSoup(html, "html.parser")

    for tag in soup(["script", "style"]):
        tag.decompose()

    text = soup.get_text(separator=" ")

    return re.sub(r"\s+", " ", text).strip()


# ============================================================
# BLOCKING LOADERS (run in executor)
# ============================================================

def load_pdf_text(data: bytes) -> str:

    try:
        reader = PdfReader(io.BytesIO(data))

        parts = []

        for page in reader.pages:

            text = page.extract_text()

            if text:
                parts.append(text)

    except Exception as e:
        raise PdfParseError(f"Failed to parse PDF: {e}")

    return "\n".join(parts).strip()


def fetch_link_text(url: str) -> str:

    try:
        resp = requests.get(
            url,
            headers={
                "User-Agent": LINK_FETCH_USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,text/plain;q=0.9,*/*;q=0.8",
            },
            timeout=LINK_FETCH_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        raise FetchError(f"Request failed: {e}")

    if not 200 <= resp.status_code < 300:
        raise FetchError(f"HTTP {resp.status_code}")

    text = extract_clean_text(resp.text)

    if not text:
        raise FetchError("Page contains no readable text")

    return text


# ============================================================
# EXTRACTOR
# ============================================================

class ContentExtractor:
    """
    Turns one submission unit into normalized text plus metadata.

    Blocking work (PDF parsing, HTTP fetch) is pushed to the default
    thread pool so the event loop stays free.
    """

    def __init__(self, max_file_size_mb: int = MAX_FILE_SIZE_MB):
        self._max_file_bytes = max_file_size_mb * 1024 * 1024

    async def _run_blocking(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, fn, *args)

    async def extract_file(
        self,
        data: bytes,
        media_type: Optional[str],
        file_name: Optional[str] = None,
    ) -> ExtractedContent:

        if not media_type or "pdf" not in media_type.lower():
            raise InvalidFileType(f"Only PDF files are supported (got {media_type or 'unknown'})")

        size = len(data or b"")

        if size == 0:
            raise EmptyFile("Uploaded file is empty")

        if size > self._max_file_bytes:
            raise FileTooLarge(f"File too large: {size / (1024 * 1024):.2f}MB")

        text = await self._run_blocking(load_pdf_text, data)

        if not text:
            raise EmptyContent("No text could be extracted from the PDF")

        logger.info(
            "pdf_extracted",
            extra={"file_name": file_name, "file_size": size, "characters": len(text)},
        )

        return ExtractedContent(
            kind=ContentKind.PDF,
            text=text,
            file_name=file_name,
            file_size=size,
        )

    async def extract_link(self, url: str) -> ExtractedContent:

        target = normalize_url(url)

        text = await self._run_blocking(fetch_link_text, target)

        logger.info(
            "link_extracted",
            extra={"url": target, "characters": len(text)},
        )

        return ExtractedContent(kind=ContentKind.LINK, text=text, link_url=target)

    async def extract_text(self, text: Optional[str]) -> ExtractedContent:

        trimmed = (text or "").strip()

        if not trimmed:
            raise EmptyContent("Content cannot be empty.")

        if is_link(trimmed):

            try:
                return await self.extract_link(trimmed)

            except FetchError as e:

                logger.warning(
                    "link_fetch_failed",
                    extra={"url": trimmed, "error": e.message},
                )

                note = FETCH_FAILURE_NOTE.format(reason=e.message)

                return ExtractedContent(
                    kind=ContentKind.TEXT,
                    text=f"{trimmed}\n\n{note}",
                    fetch_failed=True,
                )

        return ExtractedContent(kind=ContentKind.TEXT, text=trimmed)

    async def extract_submission(
        self,
        text: Optional[str] = None,
        file: Optional[UploadedFile] = None,
    ) -> List[ExtractedContent]:
        """
        Extract everything in one submission event.

        File-derived content comes first so the document precedes the
        user's note in the conversation.
        """

        contents: List[ExtractedContent] = []

        if file is not None:
            contents.append(
                await self.extract_file(file.data, file.media_type, file.file_name)
            )

        if text is not None and text.strip():
            contents.append(await self.extract_text(text))

        if not contents:
            raise EmptyContent("Provide text or a file.")

        return contents
