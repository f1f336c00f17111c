"""
workflow_config -- startup configuration for the workflow engine.

Responsibility:
    Loads engine settings and workflow definitions from one YAML file and
    returns a frozen ``WorkflowConfiguration``.  Workflow definitions are
    immutable once loaded.

Architecture position:
    Configuration -- sits above ``workflow_kernel``; the kernel never
    imports from this package.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``KeyError`` -- a required id is missing.
    - ``InvalidWorkflowDefinitionError`` -- a workflow fails its
      structural checks.

Every successful ``load_configuration()`` call emits one
``workflow_config_loaded`` log entry with the checksum and the loaded
workflow ids.
"""

from __future__ import annotations

from pathlib import Path
from typing import Mapping

from workflow_kernel.logging_config import get_logger

from workflow_config.loader import (
    compute_checksum,
    load_yaml_file,
    parse_engine_settings,
    parse_workflows,
)
from workflow_config.schema import EngineSettings, WorkflowConfiguration

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "EngineSettings",
    "WorkflowConfiguration",
    "load_configuration",
]

_logger = get_logger("config")

# Sample configuration shipped with the package
DEFAULT_CONFIG_PATH = Path(__file__).parent / "workflows" / "editorial.yaml"


def load_configuration(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> WorkflowConfiguration:
    """Load engine settings and workflow definitions from a YAML file.

    Args:
        path: Configuration file; defaults to the bundled sample.
        environ: Environment used for overrides (default ``os.environ``).
    """
    source = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    data = load_yaml_file(source)
    settings = parse_engine_settings(data.get("engine"), environ)
    registry = parse_workflows(data.get("workflows"))
    config = WorkflowConfiguration(
        settings=settings,
        registry=registry,
        checksum=compute_checksum(data),
        source=str(source),
    )
    _logger.info(
        "workflow_config_loaded",
        extra={
            "source": config.source,
            "checksum": config.checksum,
            "workflow_ids": sorted(wf.workflow_id for wf in registry),
        },
    )
    return config
