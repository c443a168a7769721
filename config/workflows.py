"""
Workflow definitions used by the workflow-launch command.

WorkflowConfig is handed to the command layer explicitly.  Readers get an
immutable snapshot; reload() swaps the whole mapping under the lock.

File format (YAML):

    workflows:
      ipi-aws:
        platform: aws
      ipi-aws-arm:
        platform: aws
        architecture: arm64
"""

import asyncio
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Mapping, Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Workflow:
    platform: str
    architecture: Optional[str] = None


def parse_workflows(data: dict | None) -> dict[str, Workflow]:
    """Build the name → Workflow mapping from a loaded YAML document."""
    workflows: dict[str, Workflow] = {}
    for name, body in ((data or {}).get("workflows") or {}).items():
        if not isinstance(body, dict) or not body.get("platform"):
            raise ValueError(f"workflow {name} has no platform")
        workflows[str(name)] = Workflow(
            platform=str(body["platform"]),
            architecture=str(body["architecture"]) if body.get("architecture") else None,
        )
    return workflows


class WorkflowConfig:
    def __init__(self, workflows: Mapping[str, Workflow] | None = None) -> None:
        self._lock = threading.Lock()
        self._workflows: Mapping[str, Workflow] = MappingProxyType(dict(workflows or {}))
        self._mtime: float | None = None

    def snapshot(self) -> Mapping[str, Workflow]:
        with self._lock:
            return self._workflows

    def get(self, name: str) -> Workflow | None:
        with self._lock:
            return self._workflows.get(name)

    def replace(self, workflows: Mapping[str, Workflow]) -> None:
        frozen = MappingProxyType(dict(workflows))
        with self._lock:
            self._workflows = frozen

    def load(self, path: str | os.PathLike) -> None:
        """Read *path* and replace the current mapping.  Raises on a bad file."""
        path = Path(path)
        with path.open() as fh:
            workflows = parse_workflows(yaml.safe_load(fh))
        self.replace(workflows)
        self._mtime = path.stat().st_mtime
        logger.info("Workflow config loaded", extra={"path": str(path), "count": len(workflows)})

    def reload_if_changed(self, path: str | os.PathLike) -> bool:
        """
        Reload when the file's mtime moved.  A missing or broken file keeps the
        previous mapping.
        """
        try:
            mtime = Path(path).stat().st_mtime
        except FileNotFoundError:
            logger.warning("Workflow config not found", extra={"path": str(path)})
            return False
        if mtime == self._mtime:
            return False
        try:
            self.load(path)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            logger.error("Workflow config reload failed, keeping previous",
                         extra={"path": str(path), "error": str(exc)})
            self._mtime = mtime
            return False
        return True


async def watch_workflows(config: WorkflowConfig, path: str, interval: float) -> None:
    logger.info("Workflow watcher started", extra={"path": path})
    while True:
        config.reload_if_changed(path)
        await asyncio.sleep(interval)
