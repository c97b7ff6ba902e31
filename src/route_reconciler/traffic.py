"""Resolve a Route's traffic entries into concrete revision targets."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .errors import ConfigurationMissing, RevisionMissing
from .model import Configuration, Pinned, Revision, Route, RunLatest, TrafficEntry, TrafficTarget
from .store import Lister

LOG = logging.getLogger(__name__)

DEFAULT_GROUP = ""


@dataclass(frozen=True)
class RevisionTarget:
    """A traffic entry bound to the revision that will receive it."""

    revision_name: str
    percent: int
    configuration_name: Optional[str] = None
    name: str = ""
    # Scale-to-zero is not handled, so every resolved target is active.
    active: bool = True

    def as_traffic_target(self) -> TrafficTarget:
        return TrafficTarget(
            revision_name=self.revision_name,
            percent=self.percent,
            configuration_name=self.configuration_name,
            name=self.name,
        )


@dataclass(frozen=True)
class TrafficConfig:
    """Outcome of a successful resolution.

    ``revision_targets`` keeps the Route's entry order; ``targets`` groups the same
    entries by their logical name, with unnamed entries under ``""``.
    """

    revision_targets: Tuple[RevisionTarget, ...]

    @property
    def targets(self) -> Mapping[str, Tuple[RevisionTarget, ...]]:
        groups: Dict[str, List[RevisionTarget]] = {}
        for target in self.revision_targets:
            groups.setdefault(target.name or DEFAULT_GROUP, []).append(target)
        return {group: tuple(members) for group, members in groups.items()}

    def configuration_names(self) -> Sequence[str]:
        """Configurations referenced through ``RunLatest``, de-duplicated."""

        names = (t.configuration_name for t in self.revision_targets if t.configuration_name)
        return list(dict.fromkeys(names))

    def status_traffic(self) -> Tuple[TrafficTarget, ...]:
        return tuple(t.as_traffic_target() for t in self.revision_targets)

    def total_percent(self) -> int:
        return sum(t.percent for t in self.revision_targets)


def _resolve_pinned(
    namespace: str, entry: Pinned, revisions: Lister[Revision]
) -> RevisionTarget:
    revision = revisions.get(namespace, entry.revision_name)
    if revision is None:
        raise RevisionMissing(entry.revision_name)
    return RevisionTarget(
        revision_name=revision.name,
        percent=entry.percent,
        name=entry.name,
    )


def _resolve_run_latest(
    namespace: str,
    entry: RunLatest,
    configurations: Lister[Configuration],
    revisions: Lister[Revision],
) -> RevisionTarget:
    # Absent, not yet ready and dangling latest-ready revision are all
    # reported the same way.
    config = configurations.get(namespace, entry.configuration_name)
    if config is None:
        raise ConfigurationMissing(entry.configuration_name)
    revision_name = config.status.latest_ready_revision_name
    if not revision_name:
        LOG.debug(
            "Configuration %s/%s has no ready revision yet",
            namespace,
            entry.configuration_name,
        )
        raise ConfigurationMissing(entry.configuration_name)
    if revisions.get(namespace, revision_name) is None:
        raise ConfigurationMissing(entry.configuration_name)
    return RevisionTarget(
        revision_name=revision_name,
        percent=entry.percent,
        configuration_name=config.name,
        name=entry.name,
    )


def resolve_traffic(
    route: Route,
    configurations: Lister[Configuration],
    revisions: Lister[Revision],
) -> TrafficConfig:
    """Resolve every traffic entry of ``route`` or raise on the first failure.

    Raises :class:`~route_reconciler.errors.ConfigurationMissing` or
    :class:`~route_reconciler.errors.RevisionMissing`; nothing is returned for
    a partially resolvable Route.
    """

    resolved: List[RevisionTarget] = []
    entry: TrafficEntry
    for entry in route.spec.traffic:
        if isinstance(entry, Pinned):
            resolved.append(_resolve_pinned(route.namespace, entry, revisions))
        elif isinstance(entry, RunLatest):
            resolved.append(
                _resolve_run_latest(route.namespace, entry, configurations, revisions)
            )
        else:
            raise TypeError(f"Unsupported traffic entry: {type(entry)!r}")

    return TrafficConfig(revision_targets=tuple(resolved))
