#!/usr/bin/env python3
"""
Index Rebuild Utility
Destroys the persisted index image and re-indexes the corpus directory from
scratch, e.g. after switching embedding models or a corrupt image.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from semantic_retrieval.core.config import CORPUS_DIR, INDEX_DIR, validate_retrieval_config
from semantic_retrieval.core.retrieval_service import create_retrieval_service


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Rebuild the vector index from the corpus directory")
    parser.add_argument("--corpus-dir", default=CORPUS_DIR, help="Directory of .txt corpus files")
    parser.add_argument("--index-dir", default=INDEX_DIR, help="Directory holding the index image")
    parser.add_argument("--verify-query", default="mind", help="Query used for the verification search")
    return parser.parse_args(argv)


async def rebuild(corpus_dir: str, index_dir: str, verify_query: str) -> int:
    """Clear the image, reload the corpus and return the number of indexed documents."""
    service = create_retrieval_service(corpus_dir=corpus_dir, index_dir=index_dir)
    vector_index = service.vector_index

    await vector_index.initialize()
    await vector_index.clear_index()
    print("✓ Cleared existing vector index")

    documents = await asyncio.to_thread(service.loader.load_from_directory, corpus_dir)
    print(f"Found {len(documents)} documents in {corpus_dir}")

    if not documents:
        print("No documents to index. Exiting.")
        return 0

    await vector_index.add_documents(documents)
    print(f"✓ Successfully rebuilt index with {vector_index.count} vectors")

    try:
        results = await vector_index.similarity_search(verify_query, min(3, vector_index.count))
        print(f"✓ Verification search returned {len(results)} results")
    except Exception as e:
        print(f"WARNING: Verification search failed: {e}")

    return vector_index.count


def main(argv=None):
    """Rebuild vector index from the corpus directory."""
    args = parse_args(argv)

    issues = validate_retrieval_config()
    if issues:
        for issue in issues:
            print(f"ERROR: {issue}")
        sys.exit(1)

    print("Starting vector index rebuild...")
    asyncio.run(rebuild(args.corpus_dir, args.index_dir, args.verify_query))
    print("Index rebuild complete!")


if __name__ == "__main__":
    main()
