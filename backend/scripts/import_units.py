#!/usr/bin/env python3
"""
Provision redeemable units from an NDJSON file.

Each line is a JSON object with the printed code and the character it unlocks:

    {"code": "CHARM-XPAL-001", "characterId": "red-dash"}

Codes are hashed with CODE_HASH_SECRET before they touch the database; the
raw codes are never stored. Codes that already have a unit are skipped.

Usage (after `pip install -e .`, from backend/):
    CODE_HASH_SECRET=... python scripts/import_units.py ./units.ndjson
"""

import argparse
import json
import sys
import time
from dataclasses import dataclass
from pathlib import Path

from charmclaim.config import settings
from charmclaim.database import SessionLocal
from charmclaim.errors import ClaimError, ConfigurationError
from charmclaim.services.claim_store import create_unit, find_unit_by_code_hash
from charmclaim.services.crypto_utils import CodeHasher


@dataclass
class ImportStats:
    processed: int = 0
    inserted: int = 0
    skipped: int = 0
    errored: int = 0


def import_units(lines, db, hasher: CodeHasher) -> ImportStats:
    stats = ImportStats()
    for line_number, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        stats.processed += 1
        try:
            payload = json.loads(line)
            code = payload.get("code")
            character_id = payload.get("characterId") or payload.get("character_id")
            if not code or not character_id:
                raise ValueError('Missing "code" or "characterId" field')

            if find_unit_by_code_hash(db, hasher.hash(code)) is not None:
                stats.skipped += 1
                continue

            create_unit(db, hasher, code, character_id)
            stats.inserted += 1
        except (ValueError, ClaimError) as e:
            stats.errored += 1
            print(f"[import-units] line {line_number}: {e}", file=sys.stderr)
    return stats


def main() -> int:
    parser = argparse.ArgumentParser(description="Import redeemable units from NDJSON")
    parser.add_argument("path", type=Path, help="NDJSON file with code/characterId pairs")
    args = parser.parse_args()

    if not args.path.exists():
        print(f"[import-units] Could not find NDJSON file at {args.path}", file=sys.stderr)
        return 1

    try:
        hasher = CodeHasher(settings.code_hash_secret)
    except ConfigurationError as e:
        print(f"[import-units] {e}", file=sys.stderr)
        return 1

    started = time.perf_counter()
    db = SessionLocal()
    try:
        with args.path.open(encoding="utf-8") as f:
            stats = import_units(f, db, hasher)
    finally:
        db.close()

    print(
        f"[import-units] Finished in {time.perf_counter() - started:.2f}s: "
        f"processed={stats.processed} inserted={stats.inserted} "
        f"skipped={stats.skipped} errored={stats.errored}"
    )
    return 0 if stats.errored == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
