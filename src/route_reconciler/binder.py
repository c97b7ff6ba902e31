"""Keep each Configuration bound to at most one Route."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List

from .errors import ConfigurationConflict, ConfigurationMissing
from .model import Configuration, Route
from .store import Lister, ObjectStore
from .traffic import TrafficConfig

LOG = logging.getLogger(__name__)


class ConfigurationBinder:
    """Sync Configuration bindings with a Route's current ``RunLatest`` targets.

    Every check happens before the first write so a conflict leaves the store
    untouched.  Each binding change is an independent versioned update; a
    failed write aborts the pass and is retried by requeueing the Route.
    """

    def __init__(self, client: ObjectStore) -> None:
        self._client = client

    def bind(
        self,
        route: Route,
        traffic: TrafficConfig,
        configurations: Lister[Configuration],
    ) -> None:
        to_bind: List[Configuration] = []
        wanted = traffic.configuration_names()
        for name in wanted:
            config = configurations.get(route.namespace, name)
            if config is None:
                raise ConfigurationMissing(name)
            owner = config.bound_route_name
            if owner is None:
                to_bind.append(config)
            elif owner != route.name:
                raise ConfigurationConflict(name, owner)

        stale = sorted(
            (
                config
                for config in configurations.list(route.namespace)
                if config.bound_route_name == route.name and config.name not in wanted
            ),
            key=lambda config: config.name,
        )

        for config in stale:
            LOG.info(
                "Unbinding Configuration %s from Route %s", config.meta.key, route.name
            )
            self._client.update(replace(config, bound_route_name=None))

        for config in to_bind:
            LOG.info("Binding Configuration %s to Route %s", config.meta.key, route.name)
            self._client.update(replace(config, bound_route_name=route.name))
