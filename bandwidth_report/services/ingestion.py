"""Dataset loading service for the exported bandwidth report payload.

This module reads the JSON payload produced by the export step, validates
its structure, resolves display names through an optional id -> name
mapping, drops excluded users, and fills in monthly highest consumers the
payload does not carry.
"""

import json
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from bandwidth_report.schemas import Dataset, HighestConsumer, UserRecord
from bandwidth_report.services.aggregation import derive_monthly_highest_consumers

logger = logging.getLogger(__name__)

REQUIRED_KEYS = {"users", "dateRange"}

# The export step may embed the payload in a script: window.reportData = {...};
_SCRIPT_WRAPPER = re.compile(r"^\s*(?:window\.)?reportData\s*=\s*(.*?);?\s*$", re.DOTALL)


def parse_payload_text(text: str) -> dict:
    """Parse the payload from raw JSON or a ``window.reportData = ...;`` script.

    Args:
        text: File contents.

    Returns:
        The decoded payload dictionary.

    Raises:
        ValueError: If the text is empty, not JSON, or not a JSON object.
    """
    text = text.lstrip("\ufeff").strip()
    if not text:
        raise ValueError("Report payload is empty")

    match = _SCRIPT_WRAPPER.match(text)
    if match:
        text = match.group(1)

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Report payload is not valid JSON: {e}")

    if not isinstance(payload, dict):
        raise ValueError("Report payload must be a JSON object")
    return payload


def validate_payload(payload: dict) -> None:
    """Validate that the payload has all required top-level keys.

    Raises:
        ValueError: If required keys are missing.
    """
    missing = REQUIRED_KEYS - set(payload)
    if missing:
        raise ValueError(f"Missing required keys: {sorted(missing)}")


def load_name_mapping(path: Union[str, Path]) -> Dict[str, str]:
    """Read a JSON object mapping user ids to display names."""
    with open(path, encoding="utf-8-sig") as handle:
        mapping = json.load(handle)
    if not isinstance(mapping, dict):
        raise ValueError(f"Name mapping must be a JSON object: {path}")
    return {str(key): str(value) for key, value in mapping.items()}


def build_dataset(
    payload: dict,
    name_mapping: Optional[Dict[str, str]] = None,
    excluded_users: Iterable[str] = (),
) -> Dataset:
    """Build the immutable Dataset from a decoded payload.

    Display names are resolved once here: ``name_mapping[userId]`` when
    present, otherwise the name the payload carries. Users whose id or
    display name is in ``excluded_users`` are dropped, and when two users
    resolve to the same display name only the first is kept.

    Args:
        payload: Decoded export payload.
        name_mapping: Optional user id -> display name mapping.
        excluded_users: User ids or display names to leave out.

    Returns:
        The validated Dataset.

    Raises:
        ValueError: If the payload structure or any record is invalid.
    """
    validate_payload(payload)
    name_mapping = name_mapping or {}
    excluded = set(excluded_users)

    raw_users = payload.get("users") or []
    if not isinstance(raw_users, list):
        raise ValueError("'users' must be a list")

    users = []
    seen_names = set()
    excluded_names = set(excluded)
    for raw_user in raw_users:
        user = UserRecord.model_validate(raw_user)
        display_name = name_mapping.get(user.user_id, user.display_name)

        if user.user_id in excluded or display_name in excluded:
            logger.info("Excluding user %s (%s)", user.user_id, display_name)
            excluded_names.add(display_name)
            continue
        if display_name in seen_names:
            logger.warning(
                "Skipping user %s: display name %r already in use",
                user.user_id,
                display_name,
            )
            continue
        seen_names.add(display_name)

        if display_name != user.display_name:
            user = user.model_copy(
                update={
                    "display_name": display_name,
                    "daily_data": [
                        record.model_copy(update={"name": display_name})
                        for record in user.daily_data
                    ],
                }
            )
        users.append(user)

    # Mapped names can break the exporter's ordering.
    users.sort(key=lambda item: item.display_name)

    raw_highest = payload.get("monthlyHighestConsumers") or {}
    highest = {
        key: HighestConsumer.model_validate(value) for key, value in raw_highest.items()
    }
    highest = {
        key: value.model_copy(
            update={"user_name": name_mapping.get(value.user_name, value.user_name)}
        )
        for key, value in highest.items()
    }
    # Months won by an excluded user are re-derived from the kept users.
    highest = {
        key: value for key, value in highest.items() if value.user_name not in excluded_names
    }

    derived = derive_monthly_highest_consumers(users)
    missing_months = sorted(set(derived) - set(highest))
    if missing_months:
        logger.info(
            "Deriving highest consumers for %d month(s) absent from the payload",
            len(missing_months),
        )
        for key in missing_months:
            highest[key] = derived[key]

    dataset = Dataset(
        users=users,
        date_range=payload["dateRange"],
        monthly_highest_consumers=highest,
    )
    logger.info(
        "Loaded dataset: %d users, %s to %s",
        len(dataset.users),
        dataset.date_range.start_date,
        dataset.date_range.end_date,
    )
    return dataset


def load_dataset(
    path: Union[str, Path],
    name_mapping: Optional[Dict[str, str]] = None,
    excluded_users: Iterable[str] = (),
) -> Dataset:
    """Read and build the Dataset from an exported payload file.

    Raises:
        FileNotFoundError: If the payload file does not exist.
        ValueError: If the payload is malformed.
    """
    logger.info("Reading report payload: %s", path)
    text = Path(path).read_text(encoding="utf-8")
    return build_dataset(parse_payload_text(text), name_mapping, excluded_users)
