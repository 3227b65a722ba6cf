"""
Text extraction for ingestion.

``extract_text`` dispatches on file extension: plain-text formats are read
as UTF-8, HTML is reduced to its visible text, PDF pages go through
pdfplumber.  Anything else raises ``UnsupportedFormatError``.
"""

import re
from pathlib import Path
from typing import Callable

import pdfplumber

TEXT_EXTENSIONS = {".md", ".txt", ".csv", ".json"}
HTML_EXTENSIONS = {".htm", ".html"}
PDF_EXTENSIONS = {".pdf"}
SUPPORTED_EXTENSIONS = TEXT_EXTENSIONS | HTML_EXTENSIONS | PDF_EXTENSIONS

TextExtractor = Callable[[Path], str]

_HTML_DROP_BLOCKS = re.compile(r"<(script|style)\b[\s\S]*?</\1>", re.IGNORECASE)
_HTML_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")
_HTML_ENTITIES = {"&nbsp;": " ", "&amp;": "&", "&lt;": "<", "&gt;": ">"}


class UnsupportedFormatError(ValueError):
    """File extension has no extractor."""


def html_to_text(html: str) -> str:
    text = _HTML_DROP_BLOCKS.sub(" ", html)
    text = _HTML_TAG.sub(" ", text)
    for entity, replacement in _HTML_ENTITIES.items():
        text = text.replace(entity, replacement)
    return _WHITESPACE.sub(" ", text).strip()


def pdf_to_text(file_path: Path) -> str:
    pages = []
    with pdfplumber.open(file_path) as pdf:
        for page in pdf.pages:
            page_text = page.extract_text()
            if page_text and page_text.strip():
                pages.append(page_text.strip())
    return "\n\n".join(pages)


def extract_text(file_path: Path) -> str:
    extension = file_path.suffix.lower()
    if extension in TEXT_EXTENSIONS:
        return file_path.read_text(encoding="utf-8")
    if extension in HTML_EXTENSIONS:
        return html_to_text(file_path.read_text(encoding="utf-8"))
    if extension in PDF_EXTENSIONS:
        return pdf_to_text(file_path)
    raise UnsupportedFormatError(f"No text extractor for '{extension}' ({file_path.name})")
