"""Object metadata, group/version identifiers, label selectors and lookup errors."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional


@dataclass(frozen=True)
class GroupResource:
    """A resource name qualified by its API group."""

    group: str
    resource: str

    def __str__(self) -> str:
        return f"{self.resource}.{self.group}" if self.group else self.resource


@dataclass(frozen=True)
class GroupKind:
    """A kind qualified by its API group."""

    group: str
    kind: str

    def __str__(self) -> str:
        return f"{self.kind}.{self.group}" if self.group else self.kind


@dataclass(frozen=True)
class GroupVersionResource:
    """A resource name qualified by API group and version."""

    group: str
    version: str
    resource: str

    def group_resource(self) -> GroupResource:
        return GroupResource(self.group, self.resource)


@dataclass(frozen=True)
class GroupVersionKind:
    """A kind qualified by API group and version."""

    group: str
    version: str
    kind: str

    def group_kind(self) -> GroupKind:
        return GroupKind(self.group, self.kind)


@dataclass(frozen=True)
class GroupVersion:
    """An API group together with one of its versions."""

    group: str
    version: str

    def with_resource(self, resource: str) -> GroupVersionResource:
        return GroupVersionResource(self.group, self.version, resource)

    def with_kind(self, kind: str) -> GroupVersionKind:
        return GroupVersionKind(self.group, self.version, kind)

    def __str__(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version


def _meta(json_name: str, *, omitempty: bool = True, nullable: bool = False) -> dict:
    return {"json": json_name, "omitempty": omitempty, "nullable": nullable}


@dataclass
class TypeMeta:
    """Kind and API version of a serialized object."""

    kind: str = field(default="", metadata=_meta("kind"))
    api_version: str = field(default="", metadata=_meta("apiVersion"))


@dataclass
class ObjectMeta:
    """Metadata every persisted object carries."""

    name: str = field(default="", metadata=_meta("name"))
    namespace: str = field(default="", metadata=_meta("namespace"))
    labels: dict[str, str] = field(default_factory=dict, metadata=_meta("labels"))
    annotations: dict[str, str] = field(default_factory=dict, metadata=_meta("annotations"))
    resource_version: str = field(default="", metadata=_meta("resourceVersion"))
    uid: str = field(default="", metadata=_meta("uid"))


@dataclass
class ListMeta:
    """Metadata carried by list responses."""

    resource_version: str = field(default="", metadata=_meta("resourceVersion"))
    continue_: str = field(default="", metadata=_meta("continue"))


@dataclass
class ListOptions:
    """Options for list and watch requests."""

    label_selector: str = field(default="", metadata=_meta("labelSelector"))
    field_selector: str = field(default="", metadata=_meta("fieldSelector"))
    watch: bool = field(default=False, metadata=_meta("watch"))
    resource_version: str = field(default="", metadata=_meta("resourceVersion"))
    timeout_seconds: Optional[int] = field(
        default=None, metadata=_meta("timeoutSeconds", nullable=True)
    )


@dataclass
class Node:
    """A cluster node, as far as policy selection needs it."""

    name: str = ""
    labels: dict[str, str] = field(default_factory=dict)


class _Operator(Enum):
    EQUALS = "="
    NOT_EQUALS = "!="
    IN = "in"
    NOT_IN = "notin"
    EXISTS = "exists"
    DOES_NOT_EXIST = "!"


@dataclass(frozen=True)
class _Requirement:
    key: str
    operator: _Operator
    values: tuple[str, ...] = ()

    def matches(self, labels: Mapping[str, str]) -> bool:
        present = self.key in labels
        op = self.operator
        if op in (_Operator.EQUALS, _Operator.IN):
            return present and labels[self.key] in self.values
        if op in (_Operator.NOT_EQUALS, _Operator.NOT_IN):
            return not present or labels[self.key] not in self.values
        if op is _Operator.EXISTS:
            return present
        return not present

    def __str__(self) -> str:
        op = self.operator
        if op is _Operator.EQUALS:
            return f"{self.key}={self.values[0]}"
        if op is _Operator.NOT_EQUALS:
            return f"{self.key}!={self.values[0]}"
        if op in (_Operator.IN, _Operator.NOT_IN):
            return f"{self.key} {op.value} ({','.join(self.values)})"
        if op is _Operator.EXISTS:
            return self.key
        return f"!{self.key}"


@dataclass(frozen=True)
class LabelSelector:
    """A conjunction of label requirements; empty matches everything."""

    requirements: tuple[_Requirement, ...] = ()

    def matches(self, labels: Optional[Mapping[str, str]]) -> bool:
        labels = labels or {}
        return all(req.matches(labels) for req in self.requirements)

    def __str__(self) -> str:
        return ",".join(str(req) for req in self.requirements)


_KEY = r"[A-Za-z0-9_./-]+"
_VALUE = re.compile(r"^[A-Za-z0-9_.-]*$")
_SET_RE = re.compile(rf"^({_KEY})\s+(in|notin)\s*\(([^()]*)\)$")
_NOT_EXISTS_RE = re.compile(rf"^!\s*({_KEY})$")
_EQUALITY_RE = re.compile(rf"^({_KEY})\s*(==|=|!=)\s*([A-Za-z0-9_.-]*)$")
_EXISTS_RE = re.compile(rf"^({_KEY})$")


def _split_terms(text: str) -> list[str]:
    terms: list[str] = []
    current: list[str] = []
    depth = 0
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                raise ValueError(f"unbalanced parenthesis in selector {text!r}")
        if ch == "," and depth == 0:
            terms.append("".join(current))
            current = []
        else:
            current.append(ch)
    if depth:
        raise ValueError(f"unbalanced parenthesis in selector {text!r}")
    terms.append("".join(current))
    return terms


def _parse_term(term: str) -> _Requirement:
    term = term.strip()
    if not term:
        raise ValueError("empty term in label selector")
    if match := _SET_RE.match(term):
        key, op, raw = match.groups()
        values = [v.strip() for v in raw.split(",")]
        if not all(values) or not all(_VALUE.match(v) for v in values):
            raise ValueError(f"invalid value set in selector term {term!r}")
        operator = _Operator.IN if op == "in" else _Operator.NOT_IN
        return _Requirement(key, operator, tuple(sorted(set(values))))
    if match := _NOT_EXISTS_RE.match(term):
        return _Requirement(match.group(1), _Operator.DOES_NOT_EXIST)
    if match := _EQUALITY_RE.match(term):
        key, op, value = match.groups()
        operator = _Operator.NOT_EQUALS if op == "!=" else _Operator.EQUALS
        return _Requirement(key, operator, (value,))
    if match := _EXISTS_RE.match(term):
        return _Requirement(match.group(1), _Operator.EXISTS)
    raise ValueError(f"invalid label selector term {term!r}")


def parse_selector(text: str) -> LabelSelector:
    """Parse a label selector such as ``a=b,c!=d,e in (f,g),!h``."""
    if not text.strip():
        return everything()
    requirements = [_parse_term(term) for term in _split_terms(text)]
    requirements.sort(key=lambda req: req.key)
    return LabelSelector(tuple(requirements))


def everything() -> LabelSelector:
    """A selector that matches every label set."""
    return LabelSelector()


class NotFoundError(LookupError):
    """Raised when a named object does not exist."""

    def __init__(self, qualified_resource: GroupResource, name: str):
        self.qualified_resource = qualified_resource
        self.name = name
        super().__init__(f'{qualified_resource} "{name}" not found')


def is_not_found(err: BaseException) -> bool:
    """Tell whether an error reports a missing object."""
    return isinstance(err, NotFoundError)