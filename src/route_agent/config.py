"""YAML configuration loader for the route controller."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import yaml

from route_reconciler.domain import DomainConfig


@dataclass
class ControllerConfig:
    workers: int = 2
    resync_period: float = 300.0
    output_dir: Optional[Path] = None


@dataclass
class WatcherConfig:
    type: str
    path: Path
    interval: float = 5.0


@dataclass
class AgentConfig:
    controller: ControllerConfig
    domains: DomainConfig
    watchers: Sequence[WatcherConfig] = field(default_factory=list)


def _parse_controller(section: dict) -> ControllerConfig:
    if not isinstance(section, dict):
        raise ValueError("'controller' section must be a mapping")
    workers = int(section.get("workers", 2))
    if workers < 1:
        raise ValueError("'workers' must be at least 1")
    resync_period = float(section.get("resync_period", 300.0))
    if resync_period <= 0:
        raise ValueError("'resync_period' must be positive")
    output_dir = section.get("output_dir")
    return ControllerConfig(
        workers=workers,
        resync_period=resync_period,
        output_dir=Path(output_dir) if output_dir else None,
    )


def _parse_watchers(entries: Iterable[dict]) -> List[WatcherConfig]:
    watchers: List[WatcherConfig] = []
    for entry in entries:
        if not isinstance(entry, dict) or "type" not in entry:
            raise ValueError("each watcher needs a 'type'")
        watchers.append(
            WatcherConfig(
                type=str(entry["type"]),
                path=Path(entry.get("path", ".")),
                interval=float(entry.get("interval", 5.0)),
            )
        )
    return watchers


def parse_config(data: object) -> AgentConfig:
    if not isinstance(data, dict):
        raise ValueError("Controller configuration must be a mapping")

    controller = _parse_controller(data.get("controller") or {})

    domains_section = data.get("domains")
    if domains_section is not None and not isinstance(domains_section, dict):
        raise ValueError("'domains' section must be a mapping")
    domains = DomainConfig.from_mapping(domains_section)

    watchers_section = data.get("watchers", [])
    if not isinstance(watchers_section, list):
        raise ValueError("'watchers' section must be a list")
    watchers = _parse_watchers(watchers_section)

    return AgentConfig(controller=controller, domains=domains, watchers=watchers)


def load_config(path: Path) -> AgentConfig:
    return parse_config(yaml.safe_load(path.read_text()))
