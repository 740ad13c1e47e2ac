"""Section chunking with strategy selection and priority scoring.

Strategies by section type:
- api: one chunk per detected function/class signature
- code/example: one chunk per fenced code block with surrounding context
- everything else: sentence accumulation up to the size limit with overlap

Chunks are scored with a priority in [0, 1] so limited budgets keep the
most useful ones.
"""
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Tuple

import structlog
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from docvec import config
from docvec.errors import ProcessingError
from docvec.rag.md_parser import ParsedDocument, Section

logger = structlog.get_logger()

ChunkType = Literal["function", "class", "guide", "example"]

# Secondary sort key when priorities tie
TYPE_IMPORTANCE = {"function": 4, "class": 3, "example": 2, "guide": 1}

SECTION_CHUNK_TYPES = {"api": "function", "code": "example", "example": "example", "guide": "guide"}
SECTION_WEIGHT_KEYS = {"api": "function", "code": "example", "example": "example", "guide": "guide", "text": "text"}

DEFAULT_TYPE_DISTRIBUTION = {"function": 0.7, "example": 0.2, "guide": 0.1}


@dataclass(frozen=True)
class PriorityWeights:
    """Base weight per content kind, multiplied by content signals."""

    function: float = 0.7
    example: float = 0.2
    guide: float = 0.1
    text: float = 0.05
    fallback: float = 0.1

    def weight_for(self, key: str) -> float:
        return {
            "function": self.function,
            "example": self.example,
            "guide": self.guide,
            "text": self.text,
        }.get(key, self.fallback)


class ChunkMetadata(BaseModel):
    """Chunk metadata; serializes with camelCase keys for interchange."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    type: ChunkType
    title: str
    source_url: Optional[str] = None
    category: Optional[str] = None
    function_name: Optional[str] = None
    parameters: List[str] = Field(default_factory=list)
    priority: float = Field(ge=0.0, le=1.0)
    has_code_example: bool = False
    word_count: int = Field(ge=0)
    source_section_id: str


class Chunk(BaseModel):
    """A bounded unit of documentation text, the atomic unit of retrieval."""

    model_config = ConfigDict(frozen=True)

    id: str
    markdown: str
    metadata: ChunkMetadata


@dataclass
class ChunkingResult:
    chunks: List[Chunk]
    warnings: List[str] = field(default_factory=list)
    failed_documents: int = 0


class ChunkBuilder:
    """Converts typed sections into bounded, prioritized chunks."""

    # Signature boundaries in API sections: (pattern, chunk type)
    BOUNDARY_PATTERNS = [
        (
            re.compile(r"^#{1,6}[ \t]+`?(?:[A-Za-z_$][\w$]*\.)*([A-Za-z_$][\w$]*)[ \t]*\([^)]*\)", re.MULTILINE),
            "function",
        ),
        (re.compile(r"^([A-Za-z_$][\w$]*)[ \t]*\([^)]*\)[ \t]*(?:=>|\{)", re.MULTILINE), "function"),
        (re.compile(r"^(?:async[ \t]+)?(?:function|def)[ \t]+([A-Za-z_$][\w$]*)[ \t]*\(", re.MULTILINE), "function"),
        (re.compile(r"^class[ \t]+([A-Za-z_$][\w$]*)", re.MULTILINE), "class"),
    ]
    # Control-flow statements that look like `name(...) {`
    NOT_FUNCTION_NAMES = {"if", "for", "while", "switch", "catch", "with", "return"}

    FENCE_PATTERN = re.compile(r"```[\s\S]*?```")
    SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")
    PARAMETER_LIST = re.compile(r"\(([^)]*)\)")
    PARAM_DOC = re.compile(r"@param\s+(?:\{[^}]*\}\s+)?(\w+)")
    IDENTIFIER = re.compile(r"^[A-Za-z_$][\w$]*$")
    CALL_LINE = re.compile(r"^\s*[A-Za-z_$][\w$]*\s*\(", re.MULTILINE)

    def __init__(
        self,
        max_chunk_size: Optional[int] = None,
        min_chunk_size: Optional[int] = None,
        overlap_size: Optional[int] = None,
        code_context_window: Optional[int] = None,
        max_chunks_per_document: Optional[int] = None,
        priority_weights: Optional[PriorityWeights] = None,
    ):
        """Initialize the chunk builder.

        Args:
            max_chunk_size: Upper bound on chunk length in characters (default from config)
            min_chunk_size: Lower bound on chunk length in characters (default from config)
            overlap_size: Characters shared between neighbouring API chunks (default from config)
            code_context_window: Characters kept around each code block (default from config)
            max_chunks_per_document: Chunk budget per document (default from config)
            priority_weights: Base weights for priority scoring
        """
        self.max_chunk_size = config.MAX_CHUNK_SIZE if max_chunk_size is None else max_chunk_size
        self.min_chunk_size = config.MIN_CHUNK_SIZE if min_chunk_size is None else min_chunk_size
        self.overlap_size = config.CHUNK_OVERLAP if overlap_size is None else overlap_size
        self.code_context_window = (
            config.CODE_CONTEXT_WINDOW if code_context_window is None else code_context_window
        )
        self.max_chunks_per_document = (
            config.MAX_CHUNKS_PER_DOCUMENT if max_chunks_per_document is None else max_chunks_per_document
        )
        self.priority_weights = priority_weights or PriorityWeights()

        if self.min_chunk_size >= self.max_chunk_size:
            raise ValueError(
                f"min_chunk_size ({self.min_chunk_size}) must be less than "
                f"max_chunk_size ({self.max_chunk_size})"
            )
        if self.overlap_size >= self.max_chunk_size:
            raise ValueError(
                f"Overlap ({self.overlap_size}) must be less than "
                f"max_chunk_size ({self.max_chunk_size})"
            )
        if self.max_chunks_per_document < 1:
            raise ValueError(
                f"max_chunks_per_document must be >= 1, got {self.max_chunks_per_document}"
            )

    def chunk_document(self, document: ParsedDocument) -> ChunkingResult:
        """Chunk every section of a parsed document.

        Args:
            document: Parsed document

        Returns:
            ChunkingResult with at most max_chunks_per_document chunks,
            highest priority first

        Raises:
            ProcessingError: If chunk construction fails
        """
        try:
            drafts: List[Tuple[str, ChunkMetadata]] = []
            for section in document.sections:
                # Parts of a split section are fragments and are kept below the minimum
                for unit in section.subsections or [section]:
                    drafts.extend(
                        self.chunk_section(
                            unit,
                            document.url,
                            category=section.title,
                            allow_short=bool(section.subsections),
                        )
                    )
        except Exception as e:
            logger.error("chunking_failed", url=document.url, error=str(e))
            raise ProcessingError(f"Content chunking failed for {document.url or document.title}: {e}") from e

        chunks = [
            Chunk(id=f"chunk-{i}", markdown=markdown, metadata=metadata)
            for i, (markdown, metadata) in enumerate(drafts, 1)
        ]
        prioritized = prioritize_chunks(chunks)

        warnings = []
        if len(prioritized) > self.max_chunks_per_document:
            warnings.append(f"Limited to {self.max_chunks_per_document} chunks")

        final = prioritized[: self.max_chunks_per_document]

        logger.info(
            "document_chunked",
            url=document.url,
            section_count=len(document.sections),
            chunk_count=len(final),
            dropped=len(prioritized) - len(final),
        )

        return ChunkingResult(chunks=final, warnings=warnings)

    def chunk_documents(self, documents: List[ParsedDocument]) -> ChunkingResult:
        """Chunk several documents into one corpus with globally unique ids.

        A document that fails to chunk is reported in the warnings and
        contributes no chunks.
        """
        all_chunks: List[Chunk] = []
        warnings: List[str] = []
        counter = 0
        failed = 0

        for document in documents:
            try:
                result = self.chunk_document(document)
            except ProcessingError as e:
                logger.warning("document_skipped", url=document.url, error=e.message)
                warnings.append(f"Failed to chunk {document.url or document.title}: {e.message}")
                failed += 1
                continue

            for chunk in result.chunks:
                counter += 1
                all_chunks.append(chunk.model_copy(update={"id": f"chunk-{counter}"}))
            warnings.extend(result.warnings)

        return ChunkingResult(
            chunks=prioritize_chunks(all_chunks),
            warnings=warnings,
            failed_documents=failed,
        )

    def chunk_section(
        self,
        section: Section,
        source_url: str = "",
        category: Optional[str] = None,
        allow_short: bool = False,
    ) -> List[Tuple[str, ChunkMetadata]]:
        """Chunk one section with the strategy matching its type.

        Args:
            section: Section or split part to chunk
            source_url: Page the section came from
            category: Top-level section title (defaults to the section title)
            allow_short: Keep content shorter than min_chunk_size as one chunk

        Returns:
            (markdown, metadata) pairs in section order
        """
        content = section.content.strip()
        if not content or (len(content) < self.min_chunk_size and not allow_short):
            return []

        category = category or section.title

        if section.type == "api":
            drafts = self._chunk_api_section(section, content, source_url, category)
            if drafts:
                return drafts

        if section.type in ("code", "example"):
            drafts = self._chunk_code_section(section, content, source_url, category)
            if drafts:
                return drafts

        return self._chunk_by_size(section, content, source_url, category)

    def split_by_size(self, text: str) -> List[str]:
        """Split text into sentence-aligned parts no longer than max_chunk_size.

        Every part but the last is at least min_chunk_size long. Each new
        part starts with the last two sentences of the previous one.
        """
        # Pieces this short can always join a part that is under the minimum
        piece_limit = self.max_chunk_size - self.min_chunk_size
        sentences = [
            piece
            for sentence in self.SENTENCE_BREAK.split(text.strip())
            if sentence.strip()
            for piece in self._bound_sentence(sentence.strip(), piece_limit)
        ]

        parts: List[str] = []
        current: List[str] = []

        for sentence in sentences:
            if (
                current
                and _joined_length(current + [sentence]) > self.max_chunk_size
                and _joined_length(current) >= self.min_chunk_size
            ):
                parts.append(" ".join(current))
                overlap = current[-2:]
                while overlap and _joined_length(overlap + [sentence]) > self.max_chunk_size:
                    overlap = overlap[1:]
                current = overlap + [sentence]
            else:
                current.append(sentence)

        if current:
            parts.append(" ".join(current))

        return parts

    def calculate_priority(self, weight_key: str, content: str) -> float:
        """Score content importance in [0, 1]."""
        weight = self.priority_weights.weight_for(weight_key)
        lower = content.lower()
        multiplier = 1.0

        if "(" in content and ")" in content:
            multiplier += 0.2
        if "`" in content:
            multiplier += 0.1
        if "@param" in lower or "parameter" in lower or "argument" in lower:
            multiplier += 0.1
        if "@return" in lower or "returns" in lower or "=>" in content:
            multiplier += 0.1

        return min(1.0, max(0.0, weight * multiplier))

    def extract_parameters(self, content: str) -> List[str]:
        """Parameter names from the first parenthesized list and @param tags."""
        parameters: List[str] = []

        match = self.PARAMETER_LIST.search(content)
        if match:
            for raw in match.group(1).split(","):
                name = re.split(r"[:\s=]", raw.strip())[0].strip("*.?&")
                if self.IDENTIFIER.match(name) and name not in parameters:
                    parameters.append(name)

        for doc_match in self.PARAM_DOC.finditer(content):
            if doc_match.group(1) not in parameters:
                parameters.append(doc_match.group(1))

        return parameters

    def has_code_example(self, content: str) -> bool:
        return "`" in content or bool(self.CALL_LINE.search(content))

    def _find_boundaries(self, content: str) -> List[Tuple[int, str, str]]:
        found: Dict[int, Tuple[int, str, str]] = {}
        for pattern, kind in self.BOUNDARY_PATTERNS:
            for match in pattern.finditer(content):
                name = match.group(1)
                if name in self.NOT_FUNCTION_NAMES or match.start() in found:
                    continue
                found[match.start()] = (match.start(), name, kind)
        return sorted(found.values())

    def _chunk_api_section(
        self, section: Section, content: str, source_url: str, category: str
    ) -> List[Tuple[str, ChunkMetadata]]:
        boundaries = self._find_boundaries(content)
        drafts: List[Tuple[str, ChunkMetadata]] = []
        previous = 0

        for i, (position, name, kind) in enumerate(boundaries):
            start = max(previous, position - self.overlap_size)
            if i + 1 < len(boundaries):
                end = min(boundaries[i + 1][0] + self.overlap_size, len(content))
            else:
                end = len(content)
            previous = position

            text = content[start:end].strip()
            if len(text) < self.min_chunk_size:
                continue

            drafts.extend(
                self._build_drafts(
                    text,
                    title=name,
                    chunk_type=kind,
                    weight_key="function",
                    section=section,
                    source_url=source_url,
                    category=category,
                    function_name=name,
                    parameters=self.extract_parameters(content[position:end]),
                )
            )

        return drafts

    def _chunk_code_section(
        self, section: Section, content: str, source_url: str, category: str
    ) -> List[Tuple[str, ChunkMetadata]]:
        blocks = list(self.FENCE_PATTERN.finditer(content))
        window = self.code_context_window
        drafts: List[Tuple[str, ChunkMetadata]] = []
        previous_end = 0

        for i, block in enumerate(blocks):
            start = max(previous_end, block.start() - window)
            end = min(len(content), block.end() + window)
            if i + 1 < len(blocks):
                end = min(end, max(block.end(), blocks[i + 1].start() - window))
            previous_end = end

            text = content[start:end].strip()
            if len(text) < self.min_chunk_size:
                continue

            drafts.extend(
                self._build_drafts(
                    text,
                    title=f"{section.title} - Example {i + 1}",
                    chunk_type="example",
                    weight_key="example",
                    section=section,
                    source_url=source_url,
                    category=category,
                    has_code_example=True,
                )
            )

        return drafts

    def _chunk_by_size(
        self, section: Section, content: str, source_url: str, category: str
    ) -> List[Tuple[str, ChunkMetadata]]:
        return self._build_drafts(
            content,
            title=section.title,
            chunk_type=SECTION_CHUNK_TYPES.get(section.type, "guide"),
            weight_key=SECTION_WEIGHT_KEYS.get(section.type, section.type),
            section=section,
            source_url=source_url,
            category=category,
        )

    def _build_drafts(
        self,
        text: str,
        title: str,
        chunk_type: str,
        weight_key: str,
        section: Section,
        source_url: str,
        category: str,
        function_name: Optional[str] = None,
        parameters: Optional[List[str]] = None,
        has_code_example: Optional[bool] = None,
    ) -> List[Tuple[str, ChunkMetadata]]:
        parts = [text] if len(text) <= self.max_chunk_size else self.split_by_size(text)
        drafts = []

        for n, part in enumerate(parts, 1):
            metadata = ChunkMetadata(
                type=chunk_type,
                title=f"{title} (Part {n})" if len(parts) > 1 else title,
                source_url=source_url or None,
                category=category,
                function_name=function_name,
                parameters=parameters or [],
                priority=self.calculate_priority(weight_key, part),
                has_code_example=(
                    self.has_code_example(part) if has_code_example is None else has_code_example
                ),
                word_count=len(part.split()),
                source_section_id=section.id,
            )
            drafts.append((part, metadata))

        return drafts

    def _bound_sentence(self, sentence: str, limit: int) -> List[str]:
        """Hard-split an overlong sentence on spaces into pieces <= limit."""
        if len(sentence) <= limit:
            return [sentence]

        pieces: List[str] = []
        current = ""
        for word in sentence.split(" "):
            while len(word) > limit:
                if current:
                    pieces.append(current)
                    current = ""
                pieces.append(word[:limit])
                word = word[limit:]
            candidate = f"{current} {word}" if current else word
            if len(candidate) > limit:
                pieces.append(current)
                current = word
            else:
                current = candidate
        if current:
            pieces.append(current)

        return [p for p in pieces if p.strip()]


def _joined_length(sentences: List[str]) -> int:
    return sum(len(s) for s in sentences) + max(0, len(sentences) - 1)


def prioritize_chunks(chunks: List[Chunk]) -> List[Chunk]:
    """Order chunks by priority, then type importance, then word count."""
    return sorted(
        chunks,
        key=lambda c: (
            -c.metadata.priority,
            -TYPE_IMPORTANCE.get(c.metadata.type, 0),
            -c.metadata.word_count,
        ),
    )


def select_top_chunks(
    chunks: List[Chunk],
    max_chunks: int,
    distribution: Optional[Dict[str, float]] = None,
) -> List[Chunk]:
    """Pick a chunk budget with a fixed share per type.

    Each type gets floor(max_chunks * share) of its highest priority chunks,
    remaining slots are filled from the rest by priority.
    """
    if len(chunks) <= max_chunks:
        return list(chunks)

    distribution = distribution or DEFAULT_TYPE_DISTRIBUTION

    by_type: Dict[str, List[Chunk]] = {}
    for chunk in chunks:
        by_type.setdefault(chunk.metadata.type, []).append(chunk)

    selected: List[Chunk] = []
    for chunk_type, share in distribution.items():
        ranked = sorted(by_type.get(chunk_type, []), key=lambda c: -c.metadata.priority)
        selected.extend(ranked[: int(max_chunks * share)])

    remaining = max_chunks - len(selected)
    if remaining > 0:
        selected_ids = {c.id for c in selected}
        unselected = sorted(
            (c for c in chunks if c.id not in selected_ids),
            key=lambda c: -c.metadata.priority,
        )
        selected.extend(unselected[:remaining])

    return sorted(selected, key=lambda c: -c.metadata.priority)


def get_chunking_stats(chunks: List[Chunk]) -> Dict[str, object]:
    """Count chunks per type and by priority band (high >= 0.7, medium >= 0.4)."""
    by_type: Counter = Counter(c.metadata.type for c in chunks)
    distribution = {"high": 0, "medium": 0, "low": 0}

    for chunk in chunks:
        if chunk.metadata.priority >= 0.7:
            distribution["high"] += 1
        elif chunk.metadata.priority >= 0.4:
            distribution["medium"] += 1
        else:
            distribution["low"] += 1

    return {
        "total_chunks": len(chunks),
        "chunks_by_type": dict(by_type),
        "average_chunk_size": (
            sum(c.metadata.word_count for c in chunks) / len(chunks) if chunks else 0
        ),
        "priority_distribution": distribution,
    }
