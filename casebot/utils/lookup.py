"""
CSV Lookup Utilities

Loads the filter id table (user-facing label -> remote numeric id) and maps
user-selected filters to the remote search filter format.
"""

import csv
import logging
from datetime import date
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

# User-facing filter name -> remote filter key
FILTER_KEYS = {
    "module": "categoryList",
    "docType": "groupList",
    "court": "courtList",
    "act": "actList",
}

IGNORED_VALUES = {"all", "not_sure"}

YEARS_BACK = {"last_1_year": 1, "last_3_years": 3, "last_5_years": 5}


def load_filter_ids(path: str) -> dict[str, dict[str, str]]:
    """
    Load filter id lookup table from CSV file.

    Reads CSV with header 'filter,label,id' and builds a mapping
    from filter name to {label: remote id}.

    Args:
        path: Path to filters CSV file

    Returns:
        Dictionary mapping filter name → {label → id}

    Raises:
        FileNotFoundError: If CSV file doesn't exist
        IOError: If CSV file can't be read
        ValueError: If CSV format is invalid
    """
    csv_path = Path(path)

    if not csv_path.exists():
        error_msg = f"Filters CSV not found: {path}"
        logger.error(error_msg)
        raise FileNotFoundError(error_msg)

    if not csv_path.is_file():
        error_msg = f"Filters path is not a file: {path}"
        logger.error(error_msg)
        raise IOError(error_msg)

    filter_ids: dict[str, dict[str, str]] = {}

    try:
        with open(csv_path, 'r', encoding='utf-8') as f:
            reader = csv.DictReader(f)

            if not reader.fieldnames or not {'filter', 'label', 'id'} <= set(reader.fieldnames):
                error_msg = f"Invalid CSV format: expected 'filter,label,id' headers in {path}"
                logger.error(error_msg)
                raise ValueError(error_msg)

            for row_num, row in enumerate(reader, 2):  # Start at 2 for header line
                name = (row.get('filter') or '').strip()
                label = (row.get('label') or '').strip()
                remote_id = (row.get('id') or '').strip()

                if not name or not label or not remote_id:
                    logger.warning(
                        "Skipping invalid row in filters CSV",
                        extra={"file_path": path, "row_number": row_num},
                    )
                    continue

                filter_ids.setdefault(name, {})[label] = remote_id

    except IOError as e:
        error_msg = f"Failed to read filters CSV: {path} - {str(e)}"
        logger.error(error_msg)
        raise IOError(error_msg) from e

    except csv.Error as e:
        error_msg = f"Invalid CSV format in filters file: {path} - {str(e)}"
        logger.error(error_msg)
        raise ValueError(error_msg) from e

    if not filter_ids:
        error_msg = f"No valid filters found in CSV: {path}"
        logger.error(error_msg)
        raise ValueError(error_msg)

    return filter_ids


def _first(value: Any) -> Optional[str]:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def map_filters(
    filters: dict[str, Any],
    filter_ids: dict[str, dict[str, str]],
    today: Optional[date] = None,
) -> tuple[dict[str, Any], bool]:
    """
    Translate user-selected filters into the remote search filter.

    Args:
        filters: Values keyed by module/docType/court/act/yearRange/headnoteOnly;
            each may be a string or a list of strings
        filter_ids: Table from load_filter_ids()
        today: Reference date for yearRange (defaults to today)

    Returns:
        (remote filter dict, headnote-only flag)
    """
    api_filter: dict[str, Any] = {}

    for name, remote_key in FILTER_KEYS.items():
        value = filters.get(name)
        if not value:
            continue
        labels = value if isinstance(value, list) else [value]
        table = filter_ids.get(name, {})
        mapped = [table[label] for label in labels if label not in IGNORED_VALUES and label in table]
        if mapped:
            api_filter[remote_key] = mapped

    year_range = _first(filters.get("yearRange"))
    if year_range in YEARS_BACK:
        today = today or date.today()
        years = YEARS_BACK[year_range]
        try:
            start = today.replace(year=today.year - years)
        except ValueError:  # Feb 29
            start = today.replace(year=today.year - years, day=28)
        api_filter["decisionDateFrom"] = start.isoformat()
        api_filter["decisionDateTo"] = today.isoformat()

    headnote_only = _first(filters.get("headnoteOnly")) == "yes"
    return api_filter, headnote_only
