#!/usr/bin/env python3
import argparse
import asyncio
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from sitesearch.indexing.coordinator import IndexingCoordinator


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Fetch one page of a configured site and rebuild its index entries."
    )
    parser.add_argument("url", help="Absolute URL under one of the configured site roots")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    response = asyncio.run(IndexingCoordinator().index_single_page(args.url))
    if not response.result:
        print(f"Re-index failed ({response.error_kind.value}): {response.error}")
        sys.exit(1)
    print(f"Page re-indexed: {args.url}")


if __name__ == "__main__":
    main()
