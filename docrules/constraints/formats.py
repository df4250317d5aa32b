"""Format detectors: map a document to the dialect tags rules are gated on.

Tags are opaque to the engine. Detection is opt-in; callers that already know
a document's dialect declare its tags directly.
"""

from __future__ import annotations

from typing import Any, Callable

FormatDetector = Callable[[Any], bool]


def _version_field(data: Any, key: str) -> str | None:
    if not isinstance(data, dict):
        return None
    value = data.get(key)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    return value if isinstance(value, str) else None


def is_oas2(data: Any) -> bool:
    version = _version_field(data, "swagger")
    return version is not None and (version == "2" or version.startswith("2.0"))


def is_oas3(data: Any) -> bool:
    version = _version_field(data, "openapi")
    return version is not None and version.startswith("3")


def is_oas3_0(data: Any) -> bool:
    version = _version_field(data, "openapi")
    return version is not None and version.startswith("3.0")


def is_oas3_1(data: Any) -> bool:
    version = _version_field(data, "openapi")
    return version is not None and version.startswith("3.1")


def is_json_schema(data: Any) -> bool:
    return isinstance(data, dict) and isinstance(data.get("$schema"), str)


FORMATS: dict[str, FormatDetector] = {
    "oas2": is_oas2,
    "oas3": is_oas3,
    "oas3.0": is_oas3_0,
    "oas3.1": is_oas3_1,
    "json-schema": is_json_schema,
}


def register_format(name: str, detector: FormatDetector) -> None:
    """Register (or replace) a format detector."""
    FORMATS[name] = detector


def detect_formats(data: Any) -> frozenset[str]:
    """Return every registered format tag whose detector accepts `data`."""
    return frozenset(name for name, detector in FORMATS.items() if detector(data))
