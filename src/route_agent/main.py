"""Entry point for the standalone route controller."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from pathlib import Path
from threading import Event

from oslo_config import cfg

from route_reconciler.reconciler import ReconcileEngine
from route_reconciler.store import InMemoryStore

from .config import AgentConfig, load_config
from .controller import RouteController
from .handlers import RouteEnqueuer
from .opts import controller_config_from_opts, register_route_opts
from .registry import HandlerRegistry
from .render import StateRenderer
from .watchers import FileStateWatcher

LOG = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def _load_agent_config(args: argparse.Namespace) -> AgentConfig:
    if args.oslo_config_file is not None:
        conf = cfg.ConfigOpts()
        register_route_opts(conf)
        conf(args=[], default_config_files=[str(args.oslo_config_file)])
        return controller_config_from_opts(conf)
    return load_config(args.config)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the route controller")
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--config",
        type=Path,
        default=Path("/etc/route-controller/config.yaml"),
        help="Path to the YAML controller configuration file",
    )
    source.add_argument(
        "--oslo-config-file",
        type=Path,
        default=None,
        help="Read options from the [route] group of an oslo.config file instead",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    config = _load_agent_config(args)

    store = InMemoryStore()
    engine = ReconcileEngine(store, config.domains)
    stop_event = Event()
    renderer = (
        StateRenderer(config.controller.output_dir)
        if config.controller.output_dir is not None
        else None
    )
    controller = RouteController(
        engine,
        store,
        workers=config.controller.workers,
        resync_period=config.controller.resync_period,
        renderer=renderer,
        stop_event=stop_event,
    )

    registry = HandlerRegistry()
    registry.register("routes", RouteEnqueuer(controller.enqueue, store.snapshot))

    watchers = []
    for watcher_cfg in config.watchers:
        if watcher_cfg.type == "file":
            watcher = FileStateWatcher(
                registry=registry,
                store=store,
                path=watcher_cfg.path,
                interval=watcher_cfg.interval,
                stop_event=stop_event,
            )
        else:
            raise ValueError(f"unsupported watcher type '{watcher_cfg.type}'")
        # Seed the store before the workers start
        try:
            watcher.poll()
        except Exception:  # pragma: no cover - logged inside watcher
            LOG.exception("initial poll failed for watcher %s", watcher_cfg.path)
        watcher.start()
        watchers.append(watcher)

    if not watchers:
        LOG.warning("no watchers configured; controller will idle")

    controller.start()

    def _shutdown(signum, frame):  # pragma: no cover - signal handler
        LOG.info("received signal %s, shutting down", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)

    try:
        while not stop_event.is_set():
            stop_event.wait(1.0)
    except KeyboardInterrupt:  # pragma: no cover - fallback if signal not set
        stop_event.set()

    controller.stop()
    for watcher in watchers:
        watcher.join()

    LOG.info("route controller stopped")
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
