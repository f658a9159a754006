# FILE: blender_agent/knowledge/ingest.py
"""
Documentation ingestion for the knowledge base.

Reads Blender Python API docs (HTML, Markdown or plain text) from a directory
or a .zip archive, splits them into paragraph chunks, embeds each chunk and
writes the rows into the primary knowledge table.
"""

import logging
import re
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from bs4 import BeautifulSoup

from blender_agent import config
from blender_agent.knowledge.encoder import TextEncoder, get_encoder
from blender_agent.knowledge.store import KnowledgeStore

logger = logging.getLogger(__name__)

DOC_SUFFIXES = (".html", ".htm", ".md", ".txt", ".rst")

# Likely main-content containers in Sphinx output, tried in order
HTML_CONTENT_SELECTORS = ("div[role='main']", "div.document", "div.body", "article", "main", "body")

_PARAGRAPH_SPLIT_RE = re.compile(r"\n\s*\n")
_INLINE_SPACE_RE = re.compile(r"[ \t]+")


@dataclass
class IngestStats:
    documents: int = 0
    chunks: int = 0
    inserted: int = 0


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "nav", "header", "footer"]):
        tag.decompose()
    for selector in HTML_CONTENT_SELECTORS:
        node = soup.select_one(selector)
        if node is not None:
            text = node.get_text("\n").strip()
            if text:
                return text
    return "\n\n".join(p.get_text(" ").strip() for p in soup.find_all("p"))


def chunk_paragraphs(text: str, min_length: Optional[int] = None) -> List[str]:
    """Split on blank lines; drop chunks shorter than `min_length` characters."""
    min_length = config.KNOWLEDGE_CHUNK_MIN_LENGTH if min_length is None else min_length
    chunks = []
    for block in _PARAGRAPH_SPLIT_RE.split(text or ""):
        lines = [_INLINE_SPACE_RE.sub(" ", line).strip() for line in block.splitlines()]
        chunk = "\n".join(line for line in lines if line)
        if len(chunk) >= min_length:
            chunks.append(chunk)
    return chunks


def _document_text(name: str, raw: bytes) -> str:
    text = raw.decode("utf-8", errors="replace")
    if name.lower().endswith((".html", ".htm")):
        return html_to_text(text)
    return text


def iter_documents(path: Path) -> Iterator[Tuple[str, str]]:
    """(source name, text) for every documentation file under `path`."""
    if path.is_file() and path.suffix.lower() == ".zip":
        with zipfile.ZipFile(path) as archive:
            for info in archive.infolist():
                if info.is_dir() or not info.filename.lower().endswith(DOC_SUFFIXES):
                    continue
                yield info.filename, _document_text(info.filename, archive.read(info))
        return
    if path.is_file():
        yield path.name, _document_text(path.name, path.read_bytes())
        return
    for file in sorted(path.rglob("*")):
        if file.is_file() and file.suffix.lower() in DOC_SUFFIXES:
            yield str(file.relative_to(path)), _document_text(file.name, file.read_bytes())


def ingest_path(
    path,
    store: KnowledgeStore,
    encoder: Optional[TextEncoder] = None,
    table: Optional[str] = None,
    truncate: bool = False,
    batch_size: int = 64,
) -> IngestStats:
    encoder = encoder or get_encoder()
    table = table or config.KNOWLEDGE_TABLE
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Documentation source not found: {path}")

    store.create_tables()
    if truncate:
        store.truncate(table)

    stats = IngestStats()
    pending: List[Tuple[str, str]] = []

    def flush() -> None:
        if not pending:
            return
        vectors = encoder.encode_many([content for content, _ in pending], batch_size=batch_size)
        stats.inserted += store.insert_chunks(
            table, [(content, source, vector) for (content, source), vector in zip(pending, vectors)]
        )
        logger.info("[ingest] %d chunk(s) stored", stats.inserted)
        pending.clear()

    for source, text in iter_documents(path):
        stats.documents += 1
        for chunk in chunk_paragraphs(text):
            stats.chunks += 1
            pending.append((chunk, source))
            if len(pending) >= batch_size:
                flush()
    flush()

    logger.info(
        "[ingest] done: %d document(s), %d chunk(s), %d inserted into %s",
        stats.documents, stats.chunks, stats.inserted, table,
    )
    return stats


__all__ = ["IngestStats", "html_to_text", "chunk_paragraphs", "iter_documents", "ingest_path"]
