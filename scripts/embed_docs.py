#!/usr/bin/env python3
"""
Embed Blender API documentation into the knowledge tables.

Usage:
    python scripts/embed_docs.py path/to/blender_python_reference.zip
    python scripts/embed_docs.py docs/ --truncate --table blender_knowledge_new
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

load_dotenv()

from blender_agent import config
from blender_agent.knowledge.ingest import ingest_path
from blender_agent.knowledge.store import KnowledgeStore


def main():
    parser = argparse.ArgumentParser(description="Embed Blender documentation for retrieval")
    parser.add_argument("path", help="HTML/Markdown file, directory, or zip archive")
    parser.add_argument("--table", default=config.KNOWLEDGE_TABLE, help="Target knowledge table")
    parser.add_argument("--truncate", action="store_true", help="Empty the table before inserting")
    parser.add_argument("--batch-size", type=int, default=64)
    args = parser.parse_args()

    logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)

    if not config.KNOWLEDGE_DATABASE_URL:
        print("Error: KNOWLEDGE_DATABASE_URL is not set")
        sys.exit(1)

    if not Path(args.path).exists():
        print(f"Error: Path not found: {args.path}")
        sys.exit(1)

    print(f"Embedding {args.path} -> {args.table} ({config.EMBEDDING_MODEL_NAME}, {config.EMBEDDING_DIMENSIONS}d)")
    stats = ingest_path(
        args.path,
        KnowledgeStore(),
        table=args.table,
        truncate=args.truncate,
        batch_size=args.batch_size,
    )

    print("=" * 50)
    print(f"Documents: {stats.documents}")
    print(f"Chunks:    {stats.chunks}")
    print(f"Inserted:  {stats.inserted}")
    print("=" * 50)


if __name__ == "__main__":
    main()
