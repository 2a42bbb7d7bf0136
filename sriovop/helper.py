"""Small helpers shared by the SR-IOV API types."""

from __future__ import annotations

from typing import Any, Iterable, Sequence

# PF device ID -> VF device ID
SRIOV_PF_VF_MAP: dict[str, str] = {
    "1583": "154c",
    "10fb": "10ed",
    "1015": "1016",
    "1017": "1018",
}


def string_in_array(val: str, array: Iterable[str]) -> bool:
    """Tell whether ``val`` is one of the strings in ``array``."""
    return val in array


def unique_append(in_slice: Sequence[str], *args: str) -> list[str]:
    """Return ``in_slice`` extended by those of ``args`` it does not yet hold."""
    result = list(in_slice)
    for value in args:
        if value not in result:
            result.append(value)
    return result


def sort_by_priority(policies: Iterable[Any]) -> list[Any]:
    """Return the policies ordered from the highest priority value to the lowest."""
    return sorted(policies, key=lambda policy: policy.spec.priority, reverse=True)