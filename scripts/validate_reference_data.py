#!/usr/bin/env python3
"""
Validate curated reference documents offline.

Usage:
    python scripts/validate_reference_data.py
    python scripts/validate_reference_data.py --aliases my_aliases.json --interactions my_pairs.csv

Exits non-zero when any document violates its schema.
"""

import argparse
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from oncosafe.config import get_settings
from oncosafe.core.logging import get_logger, setup_logging
from oncosafe.services.validator import load_document, validate_reference_data

setup_logging()
logger = get_logger(__name__)


def main() -> int:
    settings = get_settings()
    data_dir = Path(settings.REFERENCE_DATA_DIR)

    parser = argparse.ArgumentParser(
        description="Validate drug alias, curated interaction and regimen documents"
    )
    parser.add_argument(
        "--aliases",
        type=str,
        default=str(data_dir / settings.ALIAS_FILE),
        help="Drug alias document (JSON or CSV)"
    )
    parser.add_argument(
        "--interactions",
        type=str,
        default=str(data_dir / settings.INTERACTION_FILE),
        help="Curated interaction document (CSV or JSON)"
    )
    parser.add_argument(
        "--regimens",
        type=str,
        default=str(data_dir / settings.REGIMEN_FILE),
        help="Regimen template document (JSON)"
    )
    parser.add_argument(
        "--skip-regimens",
        action="store_true",
        help="Validate only the alias and interaction documents"
    )

    args = parser.parse_args()

    try:
        report, _ = validate_reference_data(
            load_document(args.aliases),
            load_document(args.interactions),
            None if args.skip_regimens else load_document(args.regimens)
        )
    except (OSError, ValueError) as e:
        logger.error(f"Could not read reference documents: {e}")
        return 2

    for name, count in report.counts.items():
        logger.info(f"  {name}: {count} record(s)")

    if report.ok:
        logger.info("All reference documents are valid")
        return 0

    for violation in report.violations:
        logger.error(
            f"{violation.path}: {violation.constraint}",
            extra={"document": violation.document, "actual": violation.actual}
        )
    logger.error(f"{len(report.violations)} violation(s) found")
    return 1


if __name__ == "__main__":
    sys.exit(main())
