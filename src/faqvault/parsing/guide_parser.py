"""Parse guide files of any supported format into title, content and metadata."""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Union

from faqvault.exceptions import MalformedGuideError, UnsupportedFormatError
from faqvault.models import GameInfo, GuideFormat, ParsedGuide
from faqvault.parsing import heuristics

logger = logging.getLogger(__name__)

EXTENSION_FORMATS = {
    ".txt": GuideFormat.TXT,
    ".html": GuideFormat.HTML,
    ".htm": GuideFormat.HTML,
    ".md": GuideFormat.MARKDOWN,
    ".markdown": GuideFormat.MARKDOWN,
    ".pdf": GuideFormat.PDF,
}

SUPPORTED_EXTENSIONS = frozenset(EXTENSION_FORMATS)

EMPTY_GUIDE_CONTENT = "[This guide appears to be empty or contains no readable content]"
PDF_PLACEHOLDER = "[PDF content - PDF parsing not yet implemented]"

BINARY_SNIFF_BYTES = 8192

HTML_ENTITIES = {
    "&nbsp;": " ",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
    "&#39;": "'",
    "&apos;": "'",
    "&amp;": "&",
}

HTML_TITLE = re.compile(r"<title[^>]*>([^<]+)</title>", re.IGNORECASE)
HTML_H1 = re.compile(r"<h1[^>]*>([^<]+)</h1>", re.IGNORECASE)
HTML_SCRIPT = re.compile(r"<script\b.*?</script>", re.IGNORECASE | re.DOTALL)
HTML_STYLE = re.compile(r"<style\b.*?</style>", re.IGNORECASE | re.DOTALL)
HTML_BLOCK_BREAKS = [
    (re.compile(r"<br\s*/?>", re.IGNORECASE), "\n"),
    (re.compile(r"</p>", re.IGNORECASE), "\n\n"),
    (re.compile(r"</div>", re.IGNORECASE), "\n"),
    (re.compile(r"</h[1-6]>", re.IGNORECASE), "\n"),
]
HTML_TAG = re.compile(r"<[^>]+>")
BLANK_LINE_RUN = re.compile(r"\n{3,}")
MARKDOWN_HEADING = re.compile(r"^#\s+(.+)$", re.MULTILINE)


def detect_format(file_path: Union[str, Path]) -> GuideFormat:
    """Decide a guide's format from its extension; unknown extensions read as text."""
    return EXTENSION_FORMATS.get(Path(file_path).suffix.lower(), GuideFormat.TXT)


def decode_html_entities(text: str) -> str:
    # &amp; last so "&amp;lt;" decodes to "&lt;" rather than "<"
    for entity, char in HTML_ENTITIES.items():
        text = text.replace(entity, char)
    return text


def html_to_text(html: str) -> str:
    """Strip markup from an HTML guide, keeping block structure as line breaks."""
    content = HTML_SCRIPT.sub("", html)
    content = HTML_STYLE.sub("", content)

    for pattern, replacement in HTML_BLOCK_BREAKS:
        content = pattern.sub(replacement, content)

    content = HTML_TAG.sub("", content)
    content = decode_html_entities(content)

    content = "\n".join(line.strip() for line in content.split("\n"))
    return BLANK_LINE_RUN.sub("\n\n", content)


class GuideParser:
    """Turns a guide file on disk into a ParsedGuide."""

    def __init__(self):
        self._parsers = {
            GuideFormat.TXT: self._parse_text,
            GuideFormat.HTML: self._parse_html,
            GuideFormat.MARKDOWN: self._parse_markdown,
            GuideFormat.PDF: self._parse_pdf,
        }

    def parse_guide(self, file_path: Union[str, Path]) -> ParsedGuide:
        """Parse a guide file.

        Args:
            file_path: Path to the guide

        Returns:
            ParsedGuide with title, content, format and metadata

        Raises:
            UnsupportedFormatError: If no parser handles the detected format
            MalformedGuideError: If the file is binary or cannot be read
        """
        path = Path(file_path)
        guide_format = detect_format(path)

        parser = self._parsers.get(guide_format)
        if parser is None:
            raise UnsupportedFormatError(f"Unsupported file format: {guide_format}")

        return parser(path)

    def _read_text(self, path: Path) -> str:
        try:
            raw = path.read_bytes()
        except OSError as e:
            raise MalformedGuideError(f"Cannot read {path}: {e}") from e

        if b"\x00" in raw[:BINARY_SNIFF_BYTES]:
            raise MalformedGuideError(f"{path.name} looks like a binary file")

        return raw.decode("utf-8", errors="replace")

    def _parse_text(self, path: Path) -> ParsedGuide:
        content = self._read_text(path)

        if not content.strip():
            return self._empty_guide(path, GuideFormat.TXT)

        title = heuristics.infer_title(content) or heuristics.title_from_filename(str(path))
        return ParsedGuide(
            title=title,
            content=content,
            format=GuideFormat.TXT,
            metadata=heuristics.extract_metadata(content),
        )

    def _parse_html(self, path: Path) -> ParsedGuide:
        html = self._read_text(path)

        if not html.strip():
            return self._empty_guide(path, GuideFormat.HTML)

        match = HTML_TITLE.search(html) or HTML_H1.search(html)
        title = match.group(1).strip() if match else heuristics.title_from_filename(str(path))

        content = html_to_text(html)
        return ParsedGuide(
            title=title,
            content=content,
            format=GuideFormat.HTML,
            metadata=heuristics.extract_metadata(content),
        )

    def _parse_markdown(self, path: Path) -> ParsedGuide:
        content = self._read_text(path)

        if not content.strip():
            return self._empty_guide(path, GuideFormat.MARKDOWN)

        match = MARKDOWN_HEADING.search(content)
        title = match.group(1).strip() if match else heuristics.title_from_filename(str(path))

        return ParsedGuide(
            title=title,
            content=content,
            format=GuideFormat.MARKDOWN,
            metadata=heuristics.extract_metadata(content),
        )

    def _parse_pdf(self, path: Path) -> ParsedGuide:
        # Text extraction from PDFs is not supported; store a placeholder body
        return ParsedGuide(
            title=heuristics.title_from_filename(str(path)),
            content=f"{PDF_PLACEHOLDER}\n\nFilename: {path.name}",
            format=GuideFormat.PDF,
            metadata={},
        )

    def _empty_guide(self, path: Path, guide_format: GuideFormat) -> ParsedGuide:
        logger.debug(f"Empty guide: {path}")
        return ParsedGuide(
            title=f"{heuristics.title_from_filename(str(path))} (Empty Guide)",
            content=EMPTY_GUIDE_CONTENT,
            format=guide_format,
            metadata={},
        )

    def generate_tags(self, content: str, filename: str) -> List[str]:
        return heuristics.generate_tags(content, filename)

    def extract_game_info_from_path(self, file_path: Union[str, Path]) -> GameInfo:
        """Resolve the archive game id, name and platform for a guide.

        The archive lays guides out as ``<platform>/<id>-<slug>/faqs/<file>``.
        When no such folder is found, a numeric prefix on the filename is used.

        Args:
            file_path: Path to the guide

        Returns:
            GameInfo; external_id is None when no id can be derived
        """
        path = Path(file_path)
        parts = path.parts

        faqs_indexes = [i for i, part in enumerate(parts[:-1]) if part.lower() == "faqs"]
        if faqs_indexes and faqs_indexes[-1] > 0:
            faqs_index = faqs_indexes[-1]
            folder_match = heuristics.FILENAME_GAME_ID.match(parts[faqs_index - 1])

            if folder_match:
                platform = None
                if faqs_index >= 2:
                    platform = heuristics.normalize_platform(parts[faqs_index - 2])

                return GameInfo(
                    external_id=folder_match.group(1),
                    name=heuristics.capitalize_slug(folder_match.group(2).split("-")),
                    platform=platform,
                )

        file_info: Dict[str, Optional[str]] = heuristics.game_info_from_filename(str(path))
        return GameInfo(
            external_id=file_info["game_id"],
            name=file_info["game_name"],
            platform=None,
        )
