"""
Seed the family tree store from a JSON file.

The file holds a list of person records in the API's shape
(``id, name, surname, nickname, birthday, gender, mom, dad, marriedTo, photo``).
Each record goes through the configured store exactly as ``POST /familyTree``
would insert it, so existing ids are overwritten.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from muzac.db import InMemoryDbClient
from muzac.dependencies import get_db_client
from muzac.family_tree import DEFAULT_ROOT_ID, FamilyTree, TreeView, render_text
from muzac.schemas import PersonCreate

logger = logging.getLogger(__name__)


def load_records(path: Path) -> list[dict]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("members", [])
    records = []
    for index, raw in enumerate(data):
        try:
            records.append(PersonCreate(**raw).as_record())
        except ValidationError as exc:
            raise ValueError(f"Record {index} is invalid: {exc}") from exc
    return records


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed family tree members")
    parser.add_argument("path", type=Path, help="JSON file with person records")
    parser.add_argument(
        "--root",
        default=DEFAULT_ROOT_ID,
        help="Root member id used when printing the tree",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the rendered tree without writing to the store",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")

    try:
        records = load_records(args.path)
    except (OSError, ValueError) as exc:
        logger.error("Could not load %s: %s", args.path, exc)
        return 1

    db = InMemoryDbClient() if args.dry_run else get_db_client()
    for record in records:
        person = db.create_member(record)
        logger.info("Stored %s (%s %s)", person.id, person.name, person.surname)

    view = TreeView(FamilyTree(db.get_all_members()))
    view.expand_all()
    node = view.render(args.root)
    if node is None:
        logger.warning("Root member %s not found", args.root)
    else:
        print(render_text(node))

    logger.info("Seeded %d members", len(records))
    return 0


if __name__ == "__main__":
    sys.exit(main())
