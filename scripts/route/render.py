#!/usr/bin/env python3
"""Run one reconcile pass over a state file and print the converged objects."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict

import yaml

REPO_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from route_agent.codec import decode_state  # noqa: E402
from route_agent.config import load_config  # noqa: E402
from route_agent.render import StateRenderer  # noqa: E402
from route_reconciler.domain import DomainConfig  # noqa: E402
from route_reconciler.errors import ReconcileError  # noqa: E402
from route_reconciler.model import Route  # noqa: E402
from route_reconciler.reconciler import ReconcileEngine  # noqa: E402
from route_reconciler.store import InMemoryStore  # noqa: E402


LOG = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--state",
        type=Path,
        default=Path("deploy/route/state.yaml"),
        help="Path to the state file with routes, configurations and revisions",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Controller configuration providing the domain table",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("deploy/route/out"),
        help="Directory where the converged state.yaml will be written",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser.parse_args()


def load_state(path: Path) -> Dict[str, Any]:
    with path.open() as fh:
        return yaml.safe_load(fh) or {}


def main() -> int:
    args = parse_args()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    domains = load_config(args.config).domains if args.config else DomainConfig()

    store = InMemoryStore()
    for obj in decode_state(load_state(args.state)):
        store.put(obj)

    engine = ReconcileEngine(store, domains)
    failures = 0
    for route in store.objects(Route.KIND):
        try:
            engine.reconcile(route.meta.key, store.snapshot())
        except ReconcileError as exc:
            failures += 1
            LOG.warning("Route %s not converged: %s", route.meta.key, exc)

    LOG.info("Performed %d writes", len(store.actions))
    result = StateRenderer(args.output_dir).render(store)
    print(result.text)
    LOG.info("Converged state written to %s", result.output_path)
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
