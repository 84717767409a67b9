import logging
from typing import Any, Dict, Iterable, List, Mapping

log = logging.getLogger(__name__)


def replace_text(value: str, replacements: Mapping[str, str]) -> str:
    """
    Replaces every occurrence of each replacement key within a string.
    Plain substring replacement, no regular expressions, so `${...}` tokens
    need no escaping.

    Args:
        value: The string to patch.
        replacements: Mapping of search substring to replacement string.

    Returns:
        The patched string. Non-string values are returned unchanged.
    """
    if not isinstance(value, str):
        log.debug(f"replace_text: leaving non-string value untouched: {value!r}")
        return value

    modified_value = value
    for search_string, replace_string in replacements.items():
        if not isinstance(replace_string, str):
            log.warning(f"replace_text: Skipping replacement for key '{search_string}' as its value is not a string.")
            continue
        if search_string in modified_value:
            modified_value = modified_value.replace(search_string, replace_string)

    return modified_value


def replace_list(values: Iterable[str], replacements: Mapping[str, str]) -> List[str]:
    """Applies replace_text to every item of an argument list."""
    return [replace_text(value, replacements) for value in values]


def patch_mapping(data: Mapping[str, Any], replacements: Mapping[str, str]) -> Dict[str, Any]:
    """
    Returns a copy of a JSON-like mapping where every string, including the
    ones nested in lists and sub-mappings, went through replace_text.
    """
    def patch(value: Any) -> Any:
        if isinstance(value, str):
            return replace_text(value, replacements)
        if isinstance(value, Mapping):
            return {key: patch(item) for key, item in value.items()}
        if isinstance(value, list):
            return [patch(item) for item in value]
        return value

    return {key: patch(value) for key, value in data.items()}
