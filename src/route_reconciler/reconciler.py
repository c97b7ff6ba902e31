"""Route reconcile pipeline.

The engine mirrors the structure of a level-triggered controller: given a
Route key and a snapshot of the cluster it derives the complete desired
state and performs only the writes needed to reach it.  Running it again on
a converged Route performs no writes at all.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from .binder import ConfigurationBinder
from .converge import ManagedChild, Outcome, converge
from .domain import DomainConfig, domain_for_route
from .errors import InvalidKeyError, TrafficResolutionError
from .model import (
    Condition,
    ConditionSet,
    ConditionStatus,
    Route,
    RouteConditionType,
    RouteStatus,
    Service,
    VirtualService,
)
from .resources import (
    make_service,
    make_virtual_service,
    merge_service,
    merge_virtual_service,
    service_managed_fields,
    virtual_service_managed_fields,
)
from .store import ObjectStore, Snapshot
from .traffic import TrafficConfig, resolve_traffic

LOG = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def split_key(key: str) -> Tuple[str, str]:
    """Split ``"<namespace>/<name>"``; raise :class:`InvalidKeyError` otherwise."""

    parts = key.split("/")
    if len(parts) != 2 or not all(parts):
        raise InvalidKeyError(key)
    return parts[0], parts[1]


def compute_conditions(
    conditions: ConditionSet,
    error: Optional[TrafficResolutionError],
    now: datetime,
) -> ConditionSet:
    if error is None:
        status, reason, message = ConditionStatus.TRUE, "", ""
    else:
        status, reason, message = ConditionStatus.FALSE, error.reason, error.message

    for condition_type in (RouteConditionType.ALL_TRAFFIC_ASSIGNED, RouteConditionType.READY):
        conditions = conditions.set(
            Condition(
                type=condition_type.value,
                status=status,
                reason=reason,
                message=message,
            ),
            now,
        )
    return conditions


class ReconcileEngine:
    """Converge one Route's children, bindings and status."""

    def __init__(
        self,
        client: ObjectStore,
        domain_config: DomainConfig,
        *,
        clock: Clock = _utcnow,
    ) -> None:
        self._client = client
        self._domain_config = domain_config
        self._clock = clock
        self._binder = ConfigurationBinder(client)

    def reconcile(self, key: str, snapshot: Snapshot) -> None:
        """Reconcile the Route identified by ``key``.

        Returns normally on success (including when the Route is gone).
        Raises :class:`~route_reconciler.errors.ReconcileError` otherwise;
        traffic resolution failures are raised only after the endpoint and
        the Route status have been written.
        """

        namespace, name = split_key(key)
        route = snapshot.routes.get(namespace, name)
        if route is None:
            LOG.debug("Route %s no longer exists", key)
            return

        traffic: Optional[TrafficConfig] = None
        traffic_error: Optional[TrafficResolutionError] = None
        try:
            traffic = resolve_traffic(route, snapshot.configurations, snapshot.revisions)
        except TrafficResolutionError as exc:
            LOG.warning("Failed to resolve traffic for Route %s: %s", key, exc.message)
            traffic_error = exc
        else:
            self._binder.bind(route, traffic, snapshot.configurations)

        domain = domain_for_route(route, self._domain_config)

        self._reconcile_service(route, snapshot)
        if traffic is not None:
            self._reconcile_virtual_service(route, domain, traffic, snapshot)

        self._reconcile_status(route, domain, traffic, traffic_error)

        if traffic_error is not None:
            raise traffic_error

    def _reconcile_service(self, route: Route, snapshot: Snapshot) -> Outcome:
        child: ManagedChild[Service] = ManagedChild(
            kind=Service.KIND,
            compute_desired=lambda: make_service(route),
            fetch_existing=snapshot.services.get,
            create=self._client.create,
            update=self._client.update,
            managed_fields=service_managed_fields,
            merge=merge_service,
        )
        outcome, _ = converge(child)
        return outcome

    def _reconcile_virtual_service(
        self,
        route: Route,
        domain: str,
        traffic: TrafficConfig,
        snapshot: Snapshot,
    ) -> Outcome:
        child: ManagedChild[VirtualService] = ManagedChild(
            kind=VirtualService.KIND,
            compute_desired=lambda: make_virtual_service(route, domain, traffic),
            fetch_existing=snapshot.virtual_services.get,
            create=self._client.create,
            update=self._client.update,
            managed_fields=virtual_service_managed_fields,
            merge=merge_virtual_service,
        )
        outcome, _ = converge(child)
        return outcome

    def _reconcile_status(
        self,
        route: Route,
        domain: str,
        traffic: Optional[TrafficConfig],
        error: Optional[TrafficResolutionError],
    ) -> None:
        current = route.status
        desired = RouteStatus(
            domain=domain,
            conditions=compute_conditions(current.conditions, error, self._clock()),
            # On failure the VirtualService is left alone, so keep reporting
            # the traffic it still carries.
            traffic=traffic.status_traffic() if traffic is not None else current.traffic,
        )
        if desired == current:
            LOG.debug("Route %s status is up to date", route.meta.key)
            return

        LOG.info("Updating status of Route %s", route.meta.key)
        self._client.update_status(replace(route, status=desired))
