"""
Policy Configuration
====================

SLA minutes table, assignment rules and assignee pool, loaded from YAML and
hot-reloaded with watchdog.

Example ``casetools.yaml``::

    sla_minutes:
      CRITICAL: 15
      HIGH: 60
    assignment_rules:
      - name: billing-critical
        category: billing
        severity: CRITICAL
        strategy: ROUND_ROBIN
        user_ids: [3, 1, 2]
    assignee_pool:
      - id: 1
        name: alice
        available: true

Consumers take a PolicyConfig snapshot once per invocation and pass it
down; nothing reads the manager mid-operation.
"""

import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from caseflow.cases.domain.value_objects import AssignmentRule, PoolMember
from caseflow.core import ConfigurationException
from caseflow.shared.infrastructure.logging import get_logger
from caseflow.sla.domain.value_objects import SLAConfig

logger = get_logger(__name__)


class PolicyConfig(BaseModel):
    """Root of the policy YAML file."""
    sla_minutes: Dict[str, Any] = Field(default_factory=dict)
    assignment_rules: List[AssignmentRule] = Field(default_factory=list)
    assignee_pool: List[PoolMember] = Field(default_factory=list)

    @property
    def sla(self) -> SLAConfig:
        return SLAConfig(sla_minutes=self.sla_minutes)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for policy file changes."""

    def __init__(self, config_manager: "PolicyConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info("Policy file changed", extra={"path": str(event.src_path)})
            self.config_manager.reload()

    on_created = on_modified


class PolicyConfigManager:
    """
    Thread-safe policy configuration manager with hot-reload support.

    A reload that fails to parse or validate keeps the previous snapshot.
    """

    def __init__(self, initial: Optional[PolicyConfig] = None):
        self._config: Optional[PolicyConfig] = initial
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> PolicyConfig:
        """Initial configuration load."""
        self._path = Path(path)
        config = self._load_from_file(self._path)
        with self._lock:
            self._config = config
        return config

    def _load_from_file(self, path: Path) -> PolicyConfig:
        if not path.exists():
            logger.warning("Policy file not found, using defaults", extra={"path": str(path)})
            return PolicyConfig()

        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ConfigurationException("Policy file must contain a mapping", {"path": str(path)})
            return PolicyConfig(**data)
        except (yaml.YAMLError, ValidationError) as e:
            raise ConfigurationException(f"Invalid policy file {path}: {e}", {"path": str(path)}) from e

    def reload(self) -> bool:
        """Reload configuration from file."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except ConfigurationException as e:
            logger.error("Failed to reload policy config", extra={"error": e.message})
            return False

        with self._lock:
            self._config = new_config
        logger.info(
            "Policy configuration reloaded",
            extra={
                "assignment_rules": len(new_config.assignment_rules),
                "pool_size": len(new_config.assignee_pool),
            }
        )
        return True

    def start_watching(self) -> None:
        """
        Start watching the policy file for changes.

        Skipped when the file does not exist or inotify is unavailable.
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info("Policy file doesn't exist, skipping file watch", extra={"path": str(self._path)})
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.resolve().parent), recursive=False)
            self._observer.start()
            logger.info("Started watching policy file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static policy", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def config(self) -> PolicyConfig:
        """Current configuration snapshot."""
        with self._lock:
            if self._config is None:
                raise RuntimeError("Policy configuration not loaded")
            return self._config
