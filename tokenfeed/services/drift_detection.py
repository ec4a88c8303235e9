from typing import Any, Iterable, Set
from collections.abc import Mapping
from tokenfeed.core.logging_config import get_logger

logger = get_logger("drift_detection")

def detect_drift(record: Any, expected_keys: Iterable[str], source_name: str) -> Set[str]:
    """
    Checks a raw provider record against the keys its adapter reads.
    Logs a warning if any are missing and returns them. Never raises:
    the adapter still normalizes the record with defaults.
    """
    if not isinstance(record, Mapping):
        logger.warning("potential_schema_drift", source=source_name, message="Record is not an object", record_type=type(record).__name__)
        return set(expected_keys)

    missing = set(expected_keys) - set(record.keys())
    if missing:
        logger.warning("potential_schema_drift", source=source_name, missing_keys=sorted(missing), incoming_keys=sorted(record.keys()))
    return missing
