"""Write the converged store contents to disk for inspection."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from route_reconciler.model import RESOURCE_KINDS
from route_reconciler.store import InMemoryStore

from .codec import encode_state


@dataclass
class RenderResult:
    """Result of a state rendering operation."""

    text: str
    output_path: Path


class StateRenderer:
    """Dump every object held by the store into ``<output_dir>/state.yaml``."""

    def __init__(self, output_dir: Path, filename: str = "state.yaml") -> None:
        self._output_dir = Path(output_dir)
        self._filename = filename

    def render(self, store: InMemoryStore) -> RenderResult:
        objects = [obj for kind in RESOURCE_KINDS for obj in store.objects(kind)]
        text = yaml.safe_dump(encode_state(objects), sort_keys=False)

        self._output_dir.mkdir(parents=True, exist_ok=True)
        output_path = self._output_dir / self._filename
        output_path.write_text(text)

        return RenderResult(text=text, output_path=output_path)
