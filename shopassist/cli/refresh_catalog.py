# =============================================
# File: shopassist/cli/refresh_catalog.py
# Purpose: CLI entrypoint to (re)index a product catalog export into Chroma.
# Usage:
#   python -m shopassist.cli.refresh_catalog --catalog data/catalog.json --clear
# =============================================
from __future__ import annotations
import argparse
import sys
from shopassist.services.indexer import refresh_catalog
from shopassist.services.retrieval import CHROMA_PATH, COLLECTION_NAME
from shopassist.utils.logging import setup_logging

def main(argv=None):
    ap = argparse.ArgumentParser(description="Index a JSON product catalog into Chroma.")
    ap.add_argument("--catalog", required=True, help="JSON array of product records (id + metadata)")
    ap.add_argument("--collection", default=COLLECTION_NAME, help=f"Chroma collection name (default: {COLLECTION_NAME})")
    ap.add_argument("--persist", default=CHROMA_PATH, help=f"Chroma persist dir (default: {CHROMA_PATH})")
    ap.add_argument("--batch-size", type=int, default=256, help="Records embedded per batch (default: 256)")
    ap.add_argument("--clear", action="store_true", help="Drop collection before re-adding all vectors")
    args = ap.parse_args(argv)

    setup_logging()
    records, indexed = refresh_catalog(
        args.catalog,
        clear=args.clear,
        batch_size=args.batch_size,
        chroma_path=args.persist,
        collection_name=args.collection,
    )

    if indexed == 0:
        print("[WARN] No products indexed. Check --catalog path and record ids.", file=sys.stderr)
        sys.exit(1)

    print(f"[OK] Indexed {indexed}/{records} products into '{args.collection}'. Persist: {args.persist}")

if __name__ == "__main__":
    main()
