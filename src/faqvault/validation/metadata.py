"""Normalization utilities for guide metadata blobs."""

import logging
from typing import Any, List

logger = logging.getLogger(__name__)


def handle_missing_field(raw_dict: dict, field_name: str, default_value: Any) -> dict:
    """Handle missing field by setting default value.

    Args:
        raw_dict: Dictionary to modify
        field_name: Name of field to check
        default_value: Default value if field is missing

    Returns:
        Modified dictionary with field set to default if missing
    """
    if field_name not in raw_dict or raw_dict[field_name] is None:
        logger.debug(f"Field '{field_name}' missing, setting to default: {default_value}")
        raw_dict[field_name] = default_value
    return raw_dict


def clean_tags(tags: Any) -> List[str]:
    """Coerce a tags value to a de-duplicated list of non-empty strings.

    Args:
        tags: List of tags, a single comma-separated string, or None

    Returns:
        Tags in first-seen order
    """
    if tags is None:
        return []

    if isinstance(tags, str):
        logger.debug(f"Converting tags string to list: {tags}")
        tags = tags.split(",")
    elif not isinstance(tags, (list, tuple, set)):
        logger.warning(f"Tags have unexpected type {type(tags)}, converting to list")
        tags = [tags]

    cleaned = []
    for tag in tags:
        if tag is None:
            continue
        tag = str(tag).strip()
        if tag and tag not in cleaned:
            cleaned.append(tag)
    return cleaned


def normalize_guide_metadata(raw_data: dict) -> dict:
    """Apply all normalization fixes to a guide metadata blob.

    Args:
        raw_data: Metadata dictionary from the parser or a caller

    Returns:
        Normalized metadata dictionary
    """
    raw_data = handle_missing_field(raw_data, "tags", [])
    raw_data["tags"] = clean_tags(raw_data["tags"])

    # Drop empty optional strings so they don't shadow later lookups
    for key in ("author", "version", "platform"):
        if key in raw_data and (raw_data[key] is None or str(raw_data[key]).strip() == ""):
            del raw_data[key]

    return raw_data
