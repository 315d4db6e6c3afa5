"""Ranking of report samples by a configurable field."""

from collections.abc import Callable, Iterable
from typing import Any

from runtop.errors import InvalidSortField
from runtop.models import Sample

# Public sort names mapped to Sample attributes.
SORT_FIELDS: dict[str, str] = {
    "memory": "memory",
    "msgq": "message_queue_len",
    "message_queue_len": "message_queue_len",
    "reds": "reductions",
    "reductions": "reductions",
    "reds_diff": "reduction_delta",
    "reductions_diff": "reduction_delta",
    "reduction_delta": "reduction_delta",
    "default": "reduction_delta",
    "status": "status",
    "state": "status",
    "fun": "current_function",
    "current_function": "current_function",
    "name": "name",
    "percent": "percent",
    "pid": "pid",
}

DEFAULT_SECONDARY = "reduction_delta"


def resolve_sort_field(field: object) -> str:
    """Map a public sort name (case-insensitive) to a Sample attribute.

    Raises:
        InvalidSortField: If the name is not recognized.
    """
    if not isinstance(field, str):
        raise InvalidSortField(field)
    try:
        return SORT_FIELDS[field.strip().lower()]
    except KeyError:
        raise InvalidSortField(field) from None


def rank(
    samples: Iterable[Sample],
    field: str | None = None,
    secondary: str | None = DEFAULT_SECONDARY,
) -> list[Sample]:
    """Sort samples descending by field, then by secondary.

    The sort is stable: samples with equal keys keep their input order.
    With no field the input order is returned unchanged. Pids compare
    numerically when every pid is a plain number.
    """
    samples = list(samples)
    if field is None:
        return samples

    attr = resolve_sort_field(field)
    primary = _key(attr, samples)
    if secondary is None or resolve_sort_field(secondary) == attr:
        return sorted(samples, key=primary, reverse=True)

    second = _key(resolve_sort_field(secondary), samples)
    return sorted(samples, key=lambda s: (primary(s), second(s)), reverse=True)


def _key(attr: str, samples: list[Sample]) -> Callable[[Sample], Any]:
    if attr == "pid" and samples and all(str(s.pid).isdigit() for s in samples):
        return lambda s: int(s.pid)
    return lambda s: getattr(s, attr)
