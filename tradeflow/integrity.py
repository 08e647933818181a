"""
tradeflow.integrity — MANIFEST.json generation and verification for
yearly trade datasets.

The manifest records a SHA-256 digest per yearly file. The API checks
it at startup; with REQUIRE_DATA=1 a mismatch aborts startup.
"""

from __future__ import annotations

import hashlib
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

MANIFEST_NAME = "MANIFEST.json"


def sha256_file(filepath: Path) -> str:
    """Compute SHA-256 hex digest of a file."""
    h = hashlib.sha256()
    with open(filepath, "rb") as fh:
        while True:
            chunk = fh.read(65536)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def dataset_files(data_dir: Path) -> list[Path]:
    """Yearly JSON files in the directory, excluding the manifest."""
    return sorted(
        p for p in data_dir.glob("*.json")
        if p.is_file() and p.name != MANIFEST_NAME
    )


def build_manifest(data_dir: Path) -> dict[str, Any]:
    files_list = []
    for filepath in dataset_files(data_dir):
        files_list.append({
            "path": filepath.name,
            "sha256": sha256_file(filepath),
            "size_bytes": filepath.stat().st_size,
        })

    return {
        "schema_version": 1,
        "generated_at": datetime.now(UTC).isoformat(),
        "generator": "scripts/generate_manifest.py",
        "file_count": len(files_list),
        "files": files_list,
    }


def write_manifest(data_dir: Path) -> Path:
    manifest = build_manifest(data_dir)
    manifest_path = data_dir / MANIFEST_NAME
    with open(manifest_path, "w", encoding="utf-8") as fh:
        json.dump(manifest, fh, indent=2)
        fh.write("\n")
    return manifest_path


def verify_manifest(data_dir: Path) -> dict[str, Any]:
    """
    Verify SHA-256 hashes of yearly datasets against MANIFEST.json.

    Returns:
        {
            "manifest_present": bool,
            "verified": bool,        # True if all hashes match
            "errors": [str, ...],
            "files_checked": int,
        }
    """
    manifest_path = data_dir / MANIFEST_NAME
    result: dict[str, Any] = {
        "manifest_present": False,
        "verified": False,
        "errors": [],
        "files_checked": 0,
    }

    if not manifest_path.is_file():
        return result

    result["manifest_present"] = True

    try:
        with open(manifest_path, encoding="utf-8") as fh:
            manifest = json.load(fh)
    except (json.JSONDecodeError, OSError) as exc:
        result["errors"].append(f"Failed to read {MANIFEST_NAME}: {type(exc).__name__}")
        return result

    files_list = manifest.get("files", [])
    if not files_list:
        result["errors"].append(f"{MANIFEST_NAME} contains no file entries")
        return result

    for entry in files_list:
        rel_path = entry.get("path", "")
        expected_hash = entry.get("sha256", "")
        if not rel_path or not expected_hash:
            result["errors"].append(f"Invalid manifest entry: {entry}")
            continue

        file_path = data_dir / rel_path
        if not file_path.is_file():
            result["errors"].append(f"Missing file: {rel_path}")
            continue

        actual_hash = sha256_file(file_path)
        result["files_checked"] += 1
        if actual_hash != expected_hash:
            result["errors"].append(
                f"Hash mismatch: {rel_path} "
                f"(expected {expected_hash[:16]}..., got {actual_hash[:16]}...)"
            )

    result["verified"] = len(result["errors"]) == 0
    return result
