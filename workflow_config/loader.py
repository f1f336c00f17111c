"""
Configuration Loader (``workflow_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into engine settings and
frozen workflow definitions (``WorkflowType`` / ``State`` /
``ConfigTransition``).

Architecture position
---------------------
**Config layer**.  Depends on ``workflow_kernel.domain``; the kernel never
imports from here.

Invariants enforced
-------------------
* Missing required keys raise ``KeyError``; no silent defaults for ids.
* Structural checks (exactly one creation state, transitions only between
  states of their own workflow, unique ids) raise
  ``InvalidWorkflowDefinitionError``.
* ``compute_checksum`` produces a deterministic SHA-256 hash.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown comment setting  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Any, Mapping

import yaml

from workflow_kernel.domain.workflow import (
    CommentSetting,
    ConfigTransition,
    State,
    WorkflowRegistry,
    WorkflowSettings,
    WorkflowType,
)
from workflow_kernel.exceptions import InvalidWorkflowDefinitionError

from workflow_config.schema import EngineSettings

ENV_DATABASE_URL = "WORKFLOW_DATABASE_URL"
ENV_LOG_LEVEL = "WORKFLOW_LOG_LEVEL"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_engine_settings(
    data: Mapping[str, Any] | None,
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """Parse the ``engine:`` section; environment variables win over the file."""
    data = data or {}
    env = os.environ if environ is None else environ
    defaults = EngineSettings()
    return EngineSettings(
        database_url=env.get(ENV_DATABASE_URL) or data.get("database_url", defaults.database_url),
        echo_sql=bool(data.get("echo_sql", defaults.echo_sql)),
        log_level=str(env.get(ENV_LOG_LEVEL) or data.get("log_level", defaults.log_level)).upper(),
        scheduler_tick_seconds=int(
            data.get("scheduler_tick_seconds", defaults.scheduler_tick_seconds)
        ),
        anonymous_actor_id=str(data.get("anonymous_actor_id", defaults.anonymous_actor_id)),
    )


def parse_workflow_settings(data: Mapping[str, Any] | None) -> WorkflowSettings:
    data = data or {}
    return WorkflowSettings(
        comment=CommentSetting(data.get("comment_required", CommentSetting.OPTIONAL.value)),
        schedule_enabled=bool(data.get("schedule_enabled", True)),
        watchdog_log=bool(data.get("watchdog_log", True)),
        always_update_entity=bool(data.get("always_update_entity", False)),
    )


def parse_state(data: Mapping[str, Any]) -> State:
    state_id = str(data["id"])
    return State(
        state_id=state_id,
        label=str(data.get("label", state_id)),
        weight=int(data.get("weight", 0)),
        is_creation_state=bool(data.get("creation", False)),
        is_active=bool(data.get("active", True)),
    )


def parse_config_transition(workflow_id: str, data: Mapping[str, Any]) -> ConfigTransition:
    """
    Parse one ``transitions:`` entry.

    ``capabilities`` may be a list or a single string.
    """
    caps = data.get("capabilities", ())
    if isinstance(caps, str):
        caps = (caps,)
    return ConfigTransition(
        workflow_id=str(data.get("workflow", workflow_id)),
        from_state=str(data["from"]),
        to_state=str(data["to"]),
        capabilities=tuple(str(c) for c in caps),
        author_may=bool(data.get("author_may", False)),
    )


def parse_workflow(data: Mapping[str, Any]) -> WorkflowType:
    """
    Parse a ``WorkflowType`` from a dict.

    Raises:
        KeyError: ``id``, a state ``id`` or a transition ``from``/``to``
            is missing.
        InvalidWorkflowDefinitionError: structural checks failed.
    """
    workflow_id = str(data["id"])
    return WorkflowType(
        workflow_id=workflow_id,
        label=str(data.get("label", workflow_id)),
        states=tuple(parse_state(s) for s in data.get("states", ())),
        config_transitions=tuple(
            parse_config_transition(workflow_id, t) for t in data.get("transitions", ())
        ),
        settings=parse_workflow_settings(data.get("settings")),
    )


def parse_workflows(items: list[Mapping[str, Any]] | None) -> WorkflowRegistry:
    registry = WorkflowRegistry()
    for item in items or ():
        workflow = parse_workflow(item)
        if registry.get(workflow.workflow_id) is not None:
            raise InvalidWorkflowDefinitionError(
                workflow.workflow_id, ["workflow id declared twice"],
            )
        registry.register(workflow)
    return registry


def compute_checksum(data: Mapping[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
