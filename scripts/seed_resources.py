import argparse
import json
import logging
from pathlib import Path

from booking_settlement.db.engine import engine
from booking_settlement.db.writers.resources import insert_resources
from booking_settlement.logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)


def load_resources(path: Path) -> list[dict[str, object]]:
    with path.open() as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a JSON list of resources")
    return data


def main() -> None:
    """
    Load bookable resources (rooms, vehicles, tours) from a JSON file.

    Rows are upserted on id, so the script can be re-run after editing the file.
    """
    parser = argparse.ArgumentParser(description="Seed bookable resources from a JSON file.")
    parser.add_argument("path", type=Path, help="JSON file with a list of resources")
    parser.add_argument("--dry-run", action="store_true", help="Validate and log only")
    args = parser.parse_args()

    resources = load_resources(args.path)
    logger.info("Seeding %s resources from %s", len(resources), args.path)

    count = insert_resources(engine, resources, dry_run=args.dry_run)
    logger.info("Seeded %s resources (dry_run=%s)", count, args.dry_run)


if __name__ == "__main__":
    main()
