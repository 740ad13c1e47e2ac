"""Markdown section parser for documentation pages.

Handles:
- YAML frontmatter parsing
- Heading-delimited section extraction
- Section type classification (api, code, example, guide, text)
- Paragraph splitting of oversized sections
"""
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import structlog
import yaml

from docvec import config
from docvec.errors import ProcessingError

logger = structlog.get_logger()

SECTION_TYPES = ("text", "code", "api", "example", "guide")

API_TITLE_KEYWORDS = ("api", "reference", "method", "function", "class")
API_CONTENT_MARKERS = ("function(", "class ", "interface ")
EXAMPLE_TITLE_KEYWORDS = ("example", "usage", "demo")
GUIDE_TITLE_KEYWORDS = ("guide", "tutorial", "getting started", "how to", "quickstart")


@dataclass
class Section:
    """A heading-delimited unit of a document."""

    id: str
    title: str
    level: int  # 1-6 for h1-h6, parts are one deeper than their parent
    content: str
    type: str = "text"
    subsections: List["Section"] = field(default_factory=list)


@dataclass
class RawDocument:
    """Heading-delimited text handed over by a fetcher or read from disk."""

    text: str
    url: str = ""
    title: str = ""
    site_type: str = "unknown"


@dataclass
class ParsedDocument:
    """A document split into typed sections."""

    url: str
    title: str
    site_type: str
    sections: List[Section]
    frontmatter: Dict[str, Any] = field(default_factory=dict)
    word_count: int = 0
    code_block_count: int = 0
    api_reference_count: int = 0


class SectionParser:
    """Splits markdown into an ordered list of typed sections."""

    # Regex for YAML frontmatter (must be at start of file)
    FRONTMATTER_PATTERN = re.compile(r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL)

    HEADING_PATTERN = re.compile(r"^(#{1,6})\s+(.+?)$")
    FENCE_PATTERN = re.compile(r"```[\s\S]*?```")

    API_REFERENCE_PATTERNS = [
        re.compile(r"function\s+\w+\s*\("),
        re.compile(r"class\s+\w+"),
        re.compile(r"interface\s+\w+"),
        re.compile(r"\w+\s*\([^)]*\)\s*:"),
        re.compile(r"\w+\s*:\s*\w+"),
    ]

    def __init__(
        self,
        min_section_length: Optional[int] = None,
        max_section_length: Optional[int] = None,
    ):
        """Initialize the section parser.

        Args:
            min_section_length: Sections with less content are dropped (default from config)
            max_section_length: Longer sections are split into parts (default from config)
        """
        self.min_section_length = (
            config.MIN_SECTION_LENGTH if min_section_length is None else min_section_length
        )
        self.max_section_length = (
            config.MAX_SECTION_LENGTH if max_section_length is None else max_section_length
        )

        if self.min_section_length < 0:
            raise ValueError(f"min_section_length must be >= 0, got {self.min_section_length}")
        if self.max_section_length <= 0:
            raise ValueError(f"max_section_length must be > 0, got {self.max_section_length}")

    def parse(self, document: RawDocument) -> ParsedDocument:
        """Parse a raw document into typed sections.

        Args:
            document: Raw heading-delimited text with its source information

        Returns:
            ParsedDocument with classified sections

        Raises:
            ProcessingError: If the document cannot be parsed
        """
        try:
            frontmatter, body = self._parse_frontmatter(document.text)
            sections = [self._enhance_section(s) for s in self.parse_sections(body)]
        except Exception as e:
            logger.error("section_parsing_failed", url=document.url, error=str(e))
            raise ProcessingError(f"Failed to parse content from {document.url or '<text>'}: {e}") from e

        title = (
            str(frontmatter.get("title") or "")
            or document.title
            or self._first_heading(body)
            or "Untitled"
        )

        parsed = ParsedDocument(
            url=document.url,
            title=title,
            site_type=document.site_type,
            sections=sections,
            frontmatter=frontmatter,
            word_count=len(body.split()),
            code_block_count=len(self.FENCE_PATTERN.findall(body)),
            api_reference_count=self.count_api_references(body),
        )

        logger.info(
            "sections_parsed",
            url=document.url,
            title=title,
            section_count=len(sections),
            split_sections=sum(1 for s in sections if s.subsections),
        )

        return parsed

    def parse_sections(self, text: str) -> List[Section]:
        """Split text on markdown headings.

        Content before the first heading becomes an "Introduction" section.
        Heading-like lines inside fenced code blocks are treated as content.

        Args:
            text: Markdown body (without frontmatter)

        Returns:
            Sections in document order, short ones dropped
        """
        sections: List[Section] = []
        current: Optional[Section] = None
        counter = 0
        in_fence = False

        for line in text.split("\n"):
            if line.lstrip().startswith("```"):
                in_fence = not in_fence

            match = None if in_fence else self.HEADING_PATTERN.match(line)

            if match:
                self._close_section(current, sections)
                counter += 1
                title = match.group(2).strip()
                current = Section(
                    id=f"section-{counter}",
                    title=title,
                    level=len(match.group(1)),
                    content="",
                    type=self.classify_section(title, ""),
                )
            elif current is not None:
                current.content += line + "\n"
            elif line.strip():
                counter += 1
                current = Section(
                    id=f"section-{counter}",
                    title="Introduction",
                    level=1,
                    content=line + "\n",
                )

        self._close_section(current, sections)
        return sections

    def classify_section(self, title: str, content: str) -> str:
        """Classify a section from keyword signals in its title and body."""
        title_lower = title.lower()
        content_lower = content.lower()

        if any(k in title_lower for k in API_TITLE_KEYWORDS) or any(
            m in content_lower for m in API_CONTENT_MARKERS
        ):
            return "api"

        example_title = any(k in title_lower for k in EXAMPLE_TITLE_KEYWORDS)

        # Several fenced blocks without an example heading read as a code listing
        if not example_title and content.count("```") >= 4:
            return "code"

        if example_title or "`" in content:
            return "example"

        if any(k in title_lower for k in GUIDE_TITLE_KEYWORDS):
            return "guide"

        return "text"

    def split_large_section(self, section: Section) -> List[Section]:
        """Split a section into numbered parts on paragraph boundaries.

        A single paragraph longer than the limit becomes a part on its own.
        """
        paragraphs = [p for p in section.content.split("\n\n") if p.strip()]
        texts: List[str] = []
        current = ""

        for paragraph in paragraphs:
            if current and len(current) + len(paragraph) > self.max_section_length:
                texts.append(current)
                current = ""
            current += paragraph + "\n\n"

        if current.strip():
            texts.append(current)

        return [
            Section(
                id=f"{section.id}-part-{i}",
                title=f"{section.title} (Part {i})",
                level=section.level + 1,
                content=text.strip(),
                type=self.classify_section(section.title, text),
            )
            for i, text in enumerate(texts, 1)
        ]

    def count_api_references(self, markdown: str) -> int:
        """Count signature-like patterns in a document."""
        return sum(len(p.findall(markdown)) for p in self.API_REFERENCE_PATTERNS)

    def _close_section(self, section: Optional[Section], sections: List[Section]) -> None:
        if section is None:
            return
        if len(section.content.strip()) >= self.min_section_length:
            sections.append(section)
        else:
            logger.debug(
                "section_dropped",
                section_id=section.id,
                title=section.title,
                content_length=len(section.content.strip()),
            )

    def _enhance_section(self, section: Section) -> Section:
        section.type = self.classify_section(section.title, section.content)
        if len(section.content) > self.max_section_length:
            section.subsections = self.split_large_section(section)
        return section

    def _parse_frontmatter(self, content: str) -> Tuple[Dict[str, Any], str]:
        """Extract YAML frontmatter from markdown content.

        Returns:
            Tuple of (frontmatter_dict, content_without_frontmatter)
        """
        match = self.FRONTMATTER_PATTERN.match(content)

        if not match:
            return {}, content

        yaml_content = match.group(1)
        try:
            frontmatter = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            logger.warning(
                "frontmatter_parse_error",
                error=str(e),
                yaml_preview=yaml_content[:100],
            )
            frontmatter = {}

        if not isinstance(frontmatter, dict):
            frontmatter = {}

        return frontmatter, content[match.end() :]

    def _first_heading(self, text: str) -> str:
        for line in text.split("\n"):
            match = self.HEADING_PATTERN.match(line)
            if match:
                return match.group(2).strip()
        return ""


def get_processing_stats(documents: List[ParsedDocument]) -> Dict[str, Any]:
    """Aggregate statistics over parsed documents.

    Args:
        documents: Parsed documents

    Returns:
        Dictionary with page, section, word, code block and API reference
        totals plus counts per site type and per section type
    """
    site_types: Counter = Counter()
    section_types: Counter = Counter()

    for doc in documents:
        site_types[doc.site_type] += 1
        for section in doc.sections:
            section_types[section.type] += 1

    return {
        "total_pages": len(documents),
        "total_sections": sum(len(d.sections) for d in documents),
        "total_words": sum(d.word_count for d in documents),
        "total_code_blocks": sum(d.code_block_count for d in documents),
        "total_api_references": sum(d.api_reference_count for d in documents),
        "site_types": dict(site_types),
        "section_types": dict(section_types),
    }
