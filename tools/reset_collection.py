from __future__ import annotations

"""CLI utility to drop and recreate the configured vector store collection."""

import argparse

from contextrag.app.settings import settings


def main() -> None:
    """Reset the configured collection using app settings."""
    parser = argparse.ArgumentParser(description="Drop and recreate the vector store collection.")
    parser.add_argument(
        "--collection",
        default=settings.collection_name,
        help="Collection name to reset.",
    )
    args = parser.parse_args()

    from contextrag.app.dependencies import get_vectorstore, reset_pipeline_cache

    reset_pipeline_cache()
    store = get_vectorstore()
    print(f"Dropping collection: {args.collection} ({store.backend})")
    store.delete_collection(args.collection)
    store.get_or_create_collection(args.collection)
    print(f"Recreated collection: {args.collection}")


if __name__ == "__main__":
    main()
