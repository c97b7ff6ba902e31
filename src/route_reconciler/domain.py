"""Pick the externally visible domain for a Route from its labels."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Tuple

from .model import Route

DEFAULT_DOMAIN = "example.com"


@dataclass(frozen=True)
class LabelSelector:
    """Equality-based selector; an empty selector matches everything."""

    selector: Mapping[str, str] = field(default_factory=dict)

    def matches(self, labels: Mapping[str, str]) -> bool:
        return all(labels.get(key) == value for key, value in self.selector.items())

    @property
    def specificity(self) -> int:
        return len(self.selector)


@dataclass(frozen=True)
class DomainConfig:
    """Ordered ``(suffix, selector)`` pairs.

    The matching entry with the most selector constraints wins; among equally
    specific matches the one declared first wins.
    """

    domains: Tuple[Tuple[str, LabelSelector], ...] = ()

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "DomainConfig":
        """Build from ``{suffix: {"selector": {...}}}``; ``None`` means catch-all."""

        entries = []
        for suffix, value in (data or {}).items():
            if value is None:
                selector = {}
            elif isinstance(value, Mapping):
                selector = value.get("selector") or {}
            else:
                raise ValueError(f"domain '{suffix}' must map to a selector mapping")
            if not isinstance(selector, Mapping):
                raise ValueError(f"selector for domain '{suffix}' must be a mapping")
            entries.append(
                (str(suffix), LabelSelector({str(k): str(v) for k, v in selector.items()}))
            )
        return cls(domains=tuple(entries))

    def lookup(self, labels: Mapping[str, str]) -> str:
        best: Optional[Tuple[str, LabelSelector]] = None
        for suffix, selector in self.domains:
            if not selector.matches(labels):
                continue
            if best is None or selector.specificity > best[1].specificity:
                best = (suffix, selector)
        return best[0] if best is not None else DEFAULT_DOMAIN


def domain_for_route(route: Route, config: DomainConfig) -> str:
    return f"{route.name}.{route.namespace}.{config.lookup(route.labels)}"
