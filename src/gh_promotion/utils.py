from typing import Any

REF_PREFIX = "refs/heads/"


def normalise_ref(ref: str) -> str:
    return ref.removeprefix(REF_PREFIX)


def normalise_full_ref(ref: str) -> str:
    return f"{REF_PREFIX}{normalise_ref(ref)}"


def truncate(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - 3] + "..."


def get_custom_property(properties: dict[str, Any] | None, key: str) -> str | None:
    """Read a repository custom property as a string.

    GitHub returns single-select and text properties as strings, multi-select
    properties as lists and true/false properties as strings or booleans.
    """
    if not properties or key not in properties:
        return None
    value = properties[key]
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ",".join(str(v) for v in value)
    return str(value)


def is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in ("1", "true", "yes", "on")
