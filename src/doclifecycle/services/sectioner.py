"""Splits published document content into sections for the search index."""

import hashlib
import re

import structlog
from pydantic import BaseModel, Field

_HEADING = re.compile(r"^#{1,6}\s+(?P<title>.+?)\s*#*\s*$")


class IndexSection(BaseModel):
    """One indexable slice of a document."""

    section_index: int = Field(ge=0)
    title: str | None = None
    text: str
    content_hash: str

    model_config = {"frozen": True}


class Sectioner:
    """Splits text into heading-scoped sections of bounded size.

    Markdown headings start a new section and become its title. Sections
    longer than ``max_section_chars`` are broken on blank lines, packing
    consecutive paragraphs together, and any single paragraph that is still
    too long is cut at the character limit.
    """

    def __init__(
        self,
        max_section_chars: int = 1500,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        if max_section_chars <= 0:
            raise ValueError("max_section_chars must be positive")
        self._max_section_chars = max_section_chars
        self._logger = logger or structlog.get_logger(__name__)

    def split(self, text: str) -> list[IndexSection]:
        if not text.strip():
            return []

        pieces: list[tuple[str | None, str]] = []
        for title, body in self._split_on_headings(text):
            for part in self._pack_paragraphs(body):
                pieces.append((title, part))

        sections = [
            IndexSection(
                section_index=index,
                title=title,
                text=part,
                content_hash=hashlib.sha256(part.encode()).hexdigest(),
            )
            for index, (title, part) in enumerate(pieces)
        ]
        self._logger.debug("content_sectioned", text_length=len(text), section_count=len(sections))
        return sections

    def _split_on_headings(self, text: str) -> list[tuple[str | None, str]]:
        blocks: list[tuple[str | None, list[str]]] = [(None, [])]
        for line in text.splitlines():
            match = _HEADING.match(line)
            if match:
                blocks.append((match.group("title"), [line]))
            else:
                blocks[-1][1].append(line)
        return [(title, "\n".join(lines).strip()) for title, lines in blocks if "\n".join(lines).strip()]

    def _pack_paragraphs(self, body: str) -> list[str]:
        if len(body) <= self._max_section_chars:
            return [body]

        packed: list[str] = []
        current = ""
        for paragraph in (p.strip() for p in body.split("\n\n")):
            if not paragraph:
                continue
            if len(paragraph) > self._max_section_chars:
                if current:
                    packed.append(current)
                    current = ""
                packed.extend(self._hard_split(paragraph))
                continue
            candidate = f"{current}\n\n{paragraph}" if current else paragraph
            if len(candidate) <= self._max_section_chars:
                current = candidate
            else:
                packed.append(current)
                current = paragraph
        if current:
            packed.append(current)
        return packed

    def _hard_split(self, text: str) -> list[str]:
        step = self._max_section_chars
        return [text[start : start + step] for start in range(0, len(text), step) if text[start : start + step].strip()]
