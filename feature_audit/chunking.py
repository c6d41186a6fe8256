"""Pack fetched files into bounded, self-describing text chunks."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

DEFAULT_MAX_CHUNK_CHARS = 150_000
TRUNCATION_MARKER = "\n...[Truncated]"


@dataclass(frozen=True)
class FileRecord:
    """A repo-relative path and its (possibly truncated) text."""
    path: str
    content: str


def truncate_content(text: str, max_chars: int) -> str:
    """Cap text at max_chars, appending a marker when anything was cut."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


def file_header(path: str) -> str:
    return f"// File: {path}\n"


def continuation_header(path: str) -> str:
    return f"// File: {path} (Continuation)\n"


def format_file_unit(record: FileRecord) -> str:
    """Render one file as a header plus content block."""
    return f"{file_header(record.path)}{record.content}\n\n"


def pack_chunks(files: Iterable[FileRecord], max_chunk_chars: int = DEFAULT_MAX_CHUNK_CHARS) -> List[str]:
    """Split formatted files into ordered chunks no longer than max_chunk_chars.

    Files are packed greedily in input order. A file whose formatted unit alone
    exceeds the limit is sliced into contiguous max_chunk_chars pieces, each
    emitted as its own chunk; pieces after the first carry a continuation
    header when it still fits under the limit.
    """
    if max_chunk_chars < 1:
        raise ValueError("max_chunk_chars must be >= 1")

    chunks: List[str] = []
    current = ""

    for record in files:
        unit = format_file_unit(record)

        if len(unit) > max_chunk_chars:
            if current:
                chunks.append(current)
                current = ""
            header = continuation_header(record.path)
            for offset in range(0, len(unit), max_chunk_chars):
                piece = unit[offset:offset + max_chunk_chars]
                if offset > 0 and len(header) + len(piece) <= max_chunk_chars:
                    piece = header + piece
                chunks.append(piece)
        elif len(current) + len(unit) > max_chunk_chars:
            chunks.append(current)
            current = unit
        else:
            current += unit

    if current:
        chunks.append(current)
    return chunks

