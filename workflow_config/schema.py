"""
Workflow configuration schema.

The parsed, frozen form of a workflow configuration file: engine
settings plus the registry of workflow types.  YAML documents are parsed
into these types by ``workflow_config.loader``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from workflow_kernel.domain.workflow import WorkflowRegistry

DEFAULT_DATABASE_URL = "sqlite:///workflow.db"


@dataclass(frozen=True)
class EngineSettings:
    """Process-level settings for the engine and the scheduler."""

    database_url: str = DEFAULT_DATABASE_URL
    echo_sql: bool = False
    log_level: str = "INFO"
    scheduler_tick_seconds: int = 60
    anonymous_actor_id: str = "0"


@dataclass(frozen=True)
class WorkflowConfiguration:
    """Everything loaded from one configuration file.

    ``checksum`` is the SHA-256 of the canonical JSON form of the parsed
    document, for change detection.
    """

    settings: EngineSettings
    registry: WorkflowRegistry = field(compare=False)
    checksum: str
    source: str | None = None
