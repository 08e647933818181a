#!/usr/bin/env python3
"""
generate_manifest.py — Generate MANIFEST.json for yearly trade datasets.

Computes SHA-256 hashes for every <year>.json file in the data directory
and writes a MANIFEST.json file that the API verifies at startup.

Usage:
    python scripts/generate_manifest.py
    python scripts/generate_manifest.py path/to/data
"""

import json
import sys
from pathlib import Path

from tradeflow.integrity import dataset_files, write_manifest
from tradeflow.loader import DEFAULT_DATA_DIR


def main() -> None:
    data_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_DATA_DIR

    if not data_dir.is_dir():
        print(f"FATAL: data directory not found: {data_dir}", file=sys.stderr)
        sys.exit(1)

    if not dataset_files(data_dir):
        print(f"FATAL: No yearly JSON files found in {data_dir}.", file=sys.stderr)
        sys.exit(1)

    manifest_path = write_manifest(data_dir)
    with open(manifest_path, encoding="utf-8") as fh:
        manifest = json.load(fh)

    print(f"Generated MANIFEST.json for {manifest['file_count']} files:")
    print()
    for entry in manifest["files"]:
        print(f"  {entry['path']}: {entry['sha256'][:16]}... ({entry['size_bytes']:,} bytes)")
    print()
    print(f"Wrote: {manifest_path}")
    print()
    print("Done. Commit MANIFEST.json alongside the data files.")


if __name__ == "__main__":
    main()
