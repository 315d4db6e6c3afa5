"""Configuration for the runtop controller."""

from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any

import tomlkit

from runtop.errors import InvalidOption
from runtop.ranking import resolve_sort_field

STRUCTURED_SUFFIXES = (".jsonl", ".ndjson")

OPTION_KEYS = frozenset(
    {"sort", "file", "format", "interval", "first_interval", "human", "debug", "reporting", "limit"}
)


class OutputFormat(Enum):
    """How reports are written to the output target."""

    TEXT = "text"
    STRUCTURED = "structured"


@dataclass(frozen=True)
class MonitorConfig:
    """Controller configuration. Intervals are in milliseconds."""

    interval: int = 5000
    first_interval: int | None = None
    sort: str = "reduction_delta"
    human: bool = True
    file: str | None = None
    # None picks the format from the file suffix
    format: OutputFormat | None = None
    debug: bool = False
    reporting: bool = True
    limit: int | None = None

    def __post_init__(self) -> None:
        """Validate and normalize every field.

        Raises:
            InvalidOption: For an invalid value.
            InvalidSortField: For an unrecognized sort name.
        """
        normalized: dict[str, Any] = {
            "sort": resolve_sort_field(self.sort),
            "interval": _interval("interval", self.interval),
            "first_interval": _interval("first_interval", self.first_interval, optional=True),
            "limit": _interval("limit", self.limit, optional=True),
        }
        for key in ("human", "debug", "reporting"):
            value = getattr(self, key)
            if not isinstance(value, bool):
                raise InvalidOption(f"{key} must be a boolean, got {value!r}")

        path = self.file
        if path is not None and not isinstance(path, (str, Path)):
            raise InvalidOption(f"file must be a path, got {path!r}")
        normalized["file"] = None if path is None else str(path)
        if self.format is None:
            normalized["format"] = infer_format(normalized["file"])
        else:
            normalized["format"] = _format(self.format)

        for key, value in normalized.items():
            object.__setattr__(self, key, value)

    @property
    def initial_delay(self) -> int:
        """Delay before the first tick after start."""
        return self.interval if self.first_interval is None else self.first_interval

    def with_options(self, **opts: Any) -> "MonitorConfig":
        """Return a validated copy with the given options applied.

        Raises:
            InvalidOption: For unknown keys or invalid values.
            InvalidSortField: For an unrecognized sort name.
        """
        unknown = set(opts) - OPTION_KEYS
        if unknown:
            raise InvalidOption(f"unknown option(s): {', '.join(sorted(unknown))}")

        changes = dict(opts)
        if "file" in changes:
            changes.setdefault("format", None)
        return replace(self, **changes)

    @classmethod
    def load(cls, path: Path) -> "MonitorConfig":
        """Load the [runtop] table of a TOML file, using defaults for missing values."""
        defaults = cls()
        path = Path(path)
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f)
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        table = data.get("runtop", {})
        opts = {key: _plain(table[key]) for key in table if key in OPTION_KEYS}
        unknown = set(table) - OPTION_KEYS
        if unknown:
            raise ValueError(f"Unknown keys in {path}: {', '.join(sorted(unknown))}")
        return defaults.with_options(**opts)

    def save(self, path: Path) -> None:
        """Save the config as a [runtop] TOML table."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        table = tomlkit.table()
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            table.add(f.name, value.value if isinstance(value, OutputFormat) else value)

        doc = tomlkit.document()
        doc.add("runtop", table)
        path.write_text(tomlkit.dumps(doc))


def infer_format(path: str | None) -> OutputFormat:
    """Pick the structured format for .jsonl/.ndjson files, text otherwise."""
    if path is not None and path.endswith(STRUCTURED_SUFFIXES):
        return OutputFormat.STRUCTURED
    return OutputFormat.TEXT


def _interval(key: str, value: Any, optional: bool = False) -> int | None:
    if value is None and optional:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidOption(f"{key} must be a positive integer, got {value!r}")
    return value


def _format(value: Any) -> OutputFormat:
    if isinstance(value, OutputFormat):
        return value
    try:
        return OutputFormat(str(value).lower())
    except ValueError:
        raise InvalidOption(f"format must be 'text' or 'structured', got {value!r}") from None


def _plain(value: Any) -> Any:
    # tomlkit items subclass the builtin types; unwrap so bool/int checks behave
    return value.unwrap() if hasattr(value, "unwrap") else value
