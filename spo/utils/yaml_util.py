"""
YAML helpers for turning rendered manifest templates into plain dictionaries.
"""

import logging
from io import StringIO
from typing import Any

from ruamel.yaml import YAML

logger = logging.getLogger(__name__)


def load_yaml_from_string(yaml_string: str) -> dict[str, Any] | None:
    """
    Load YAML content from a string.

    The safe loader is used so the result only contains plain dicts, lists and scalars,
    which can be compared against live objects and serialized to JSON for kubectl.

    Args:
        yaml_string: YAML content as string

    Returns:
        Parsed YAML data as dictionary, or None if parsing failed
    """
    try:
        yaml = YAML(typ="safe", pure=True)
        data = yaml.load(StringIO(yaml_string))
    except Exception as e:
        logger.exception(f"Error parsing YAML string: {e}")
        return None

    if not isinstance(data, dict):
        logger.error(f"YAML document is not a mapping: {type(data).__name__}")
        return None
    return data

