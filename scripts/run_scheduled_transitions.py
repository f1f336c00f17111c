#!/usr/bin/env python3
"""
Run due scheduled workflow transitions.

Cron entry point: loads the workflow configuration, connects to the
database and fires every scheduled transition due in the window.  With
``--loop`` it keeps polling every ``scheduler_tick_seconds`` until
interrupted.

The entity adapter is host-specific and is named on the command line as
``module:factory``; the factory is called with the SQLAlchemy session and
must return an object satisfying ``workflow_kernel.domain.EntityAdapter``.

Usage:
  python3 scripts/run_scheduled_transitions.py --adapter myapp.workflow:adapter
  python3 scripts/run_scheduled_transitions.py --adapter myapp.workflow:adapter \\
      --config workflows.yaml --window-start 0 --window-end 1735689600
  python3 scripts/run_scheduled_transitions.py --adapter myapp.workflow:adapter --loop
"""

import argparse
import importlib
import signal
import sys
import threading
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Execute due scheduled workflow transitions")
    p.add_argument(
        "--config",
        default=None,
        help="Workflow configuration YAML (default: bundled sample)",
    )
    p.add_argument(
        "--adapter",
        required=True,
        help="Entity adapter factory as module:callable, called with the session",
    )
    p.add_argument("--db-url", default=None, help="Override the configured database URL")
    p.add_argument(
        "--window-start",
        type=int,
        default=None,
        help="Exclusive window start (unix seconds); default: 0",
    )
    p.add_argument(
        "--window-end",
        type=int,
        default=None,
        help="Exclusive window end (unix seconds); default: now + 1",
    )
    p.add_argument(
        "--loop",
        action="store_true",
        help="Keep running and poll every scheduler_tick_seconds",
    )
    return p.parse_args(argv)


def _resolve_factory(spec: str):
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ValueError(f"adapter must look like module:callable, got {spec!r}")
    return getattr(importlib.import_module(module_name), attr)


def main(argv=None) -> int:
    args = _parse_args(argv)

    from workflow_batch.services.scheduler import Scheduler
    from workflow_config import load_configuration
    from workflow_kernel.db.engine import (
        create_tables,
        get_session_factory,
        init_engine_from_url,
    )
    from workflow_kernel.db.immutability import register_immutability_listeners
    from workflow_kernel.domain.clock import SystemClock
    from workflow_kernel.logging_config import configure_logging, get_logger
    from workflow_kernel.services.authorization import (
        AuthorizationEngine,
        StaticCapabilityProvider,
    )
    from workflow_kernel.services.execution_engine import ExecutionEngine

    config = load_configuration(args.config)
    configure_logging(level=config.settings.log_level)
    logger = get_logger("scripts.scheduler")

    try:
        adapter_factory = _resolve_factory(args.adapter)
    except (ImportError, AttributeError, ValueError) as exc:
        print(f"  ERROR: cannot load adapter: {exc}", file=sys.stderr)
        return 2

    try:
        init_engine_from_url(
            args.db_url or config.settings.database_url,
            echo=config.settings.echo_sql,
        )
        create_tables()
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1
    register_immutability_listeners()

    clock = SystemClock()

    # Scheduled transitions run forced, so no capabilities are consulted.
    def engine_factory(session):
        adapter = adapter_factory(session)
        authorization = AuthorizationEngine(
            config.registry, StaticCapabilityProvider(), adapter,
        )
        return ExecutionEngine(session, config.registry, authorization, adapter, clock=clock)

    scheduler = Scheduler(
        session_factory=get_session_factory(),
        engine_factory=engine_factory,
        clock=clock,
        tick_interval_seconds=config.settings.scheduler_tick_seconds,
    )

    if args.loop:
        done = threading.Event()
        signal.signal(signal.SIGTERM, lambda *_: done.set())
        scheduler.start()
        try:
            done.wait()
        except KeyboardInterrupt:
            pass
        finally:
            scheduler.stop()
        return 0

    start = args.window_start if args.window_start is not None else 0
    end = args.window_end if args.window_end is not None else clock.timestamp() + 1
    result = scheduler.run_due(start, end)
    logger.info(
        "scheduled_transitions_run",
        extra={"executed": result.executed, "discarded": result.discarded, "failed": result.failed},
    )
    print(
        f"  due={result.due} executed={result.executed} discarded={result.discarded} "
        f"skipped={result.skipped} failed={result.failed}"
    )
    return 1 if result.failed else 0


if __name__ == "__main__":
    sys.exit(main())
