#!/usr/bin/env python3
"""
Import legal library records (regulations, rulings, templates) from a JSON file.

The file holds a list of records using the table's column names.

Usage:
    python scripts/import_library.py regulations data/kodeks_cywilny.json
    python scripts/import_library.py templates data/templates.json --source-url https://isap.sejm.gov.pl
"""

import argparse
import json


def main() -> int:
    parser = argparse.ArgumentParser(description="Import legal library records from JSON.")
    parser.add_argument("import_type", choices=["regulations", "rulings", "templates"])
    parser.add_argument("path", help="JSON file with a list of records")
    parser.add_argument("--source-url", default=None, help="Where the records were taken from")
    args = parser.parse_args()

    from insights_backend.db.session import get_db_session, init_db
    from insights_backend.library_import import import_records

    with open(args.path, encoding="utf-8") as f:
        records = json.load(f)
    if not isinstance(records, list):
        parser.error("JSON file must contain a list of records")

    init_db()
    with get_db_session() as db:
        log = import_records(db, args.import_type, records, source_url=args.source_url)
        print(f"Imported: {log.records_imported}")
        print(f"Failed:   {log.records_failed}")
        return 1 if log.records_failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
