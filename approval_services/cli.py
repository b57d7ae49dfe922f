"""
po-approval -- command-line entry point.

Usage:
    po-approval validate-config [--config PATH]
    po-approval escalate --database-url URL [--config PATH]
    po-approval stats --database-url URL
    po-approval cleanup --database-url URL [--older-than-days N]

Every command except ``validate-config`` works against a SQL database
created by ``create_tables``; ``--init-db`` creates missing tables first.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys

import yaml

from approval_config import (
    StaticConfigurationProvider,
    load_configuration,
    validate_configuration,
)
from approval_config.loader import load_yaml_file, parse_configuration
from approval_kernel.db.engine import create_tables, init_engine_from_url, make_session_factory
from approval_kernel.exceptions import ApprovalEngineError
from approval_kernel.logging_config import configure_logging
from approval_kernel.stores.audit import SqlAuditSink
from approval_kernel.stores.sql import SqlApprovalStore
from approval_services.engine import ApprovalEngine, build_approval_engine


def _build_engine(args: argparse.Namespace) -> ApprovalEngine:
    config = load_configuration(args.config)
    engine = init_engine_from_url(args.database_url)
    if args.init_db:
        create_tables(engine)
    factory = make_session_factory(engine)
    return build_approval_engine(
        SqlApprovalStore(factory),
        StaticConfigurationProvider(config),
        audit_sink=SqlAuditSink(factory),
    )


def cmd_validate_config(args: argparse.Namespace) -> int:
    from approval_config import DEFAULT_CONFIG_PATH

    path = args.config or DEFAULT_CONFIG_PATH
    print(f"Validating: {path}")
    try:
        config = parse_configuration(load_yaml_file(path), source=str(path))
    except (yaml.YAMLError, KeyError, TypeError, ValueError) as exc:
        print(f"PARSE FAILED: {type(exc).__name__}: {exc}")
        return 1
    result = validate_configuration(config)
    print(f"  thresholds: {len(config.thresholds)}")
    print(f"  escalation levels: {len(config.escalation.levels)}")
    print(f"  checksum: {config.checksum[:16]}...")
    for w in result.warnings:
        print(f"  WARNING: {w}")
    if not result.is_valid:
        print("VALIDATION FAILED:")
        for err in result.errors:
            print(f"  ERROR: {err}")
        return 1
    print("OK")
    return 0


def cmd_escalate(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    try:
        escalations = engine.scheduler.process_escalations()
    finally:
        engine.close()
    print(f"Escalated {len(escalations)} request(s)")
    for e in escalations:
        roles = ", ".join(r.value for r in e.escalated_to)
        print(f"  {e.request_id}: level {e.level} -> {roles}")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    try:
        stats = engine.statistics.get_statistics()
    finally:
        engine.close()
    print(json.dumps(
        {
            "total_requests": stats.total_requests,
            "by_status": {s.value: n for s, n in stats.by_status.items()},
            "by_priority": stats.by_priority,
            "by_threshold": stats.by_threshold,
            "average_approval_time_hours": round(stats.average_approval_time_hours, 3),
        },
        indent=2,
    ))
    return 0


def cmd_cleanup(args: argparse.Namespace) -> int:
    engine = _build_engine(args)
    try:
        removed = engine.retention.cleanup_old_requests(args.older_than_days)
    finally:
        engine.close()
    print(f"Removed {removed} request(s)")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="po-approval",
        description="Purchase-order approval engine maintenance commands",
    )
    parser.add_argument("--log-level", default="WARNING", help="Log level (default: WARNING)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_validate = sub.add_parser("validate-config", help="Validate an approval configuration file")
    p_validate.add_argument("--config", default=None, help="YAML file (default: packaged defaults)")
    p_validate.set_defaults(func=cmd_validate_config)

    for name, func, help_text in (
        ("escalate", cmd_escalate, "Run one escalation pass"),
        ("stats", cmd_stats, "Print approval statistics as JSON"),
        ("cleanup", cmd_cleanup, "Delete old terminal requests"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--database-url", required=True, help="SQLAlchemy database URL")
        p.add_argument("--config", default=None, help="YAML file (default: packaged defaults)")
        p.add_argument("--init-db", action="store_true", help="Create missing tables first")
        p.set_defaults(func=func)
        if name == "cleanup":
            p.add_argument(
                "--older-than-days", type=int, default=None,
                help="Retention window (default: engine.retention_days)",
            )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(level=getattr(logging, str(args.log_level).upper(), logging.WARNING))
    try:
        return args.func(args)
    except ApprovalEngineError as exc:
        print(f"Error [{exc.code}]: {exc}", file=sys.stderr)
        return 2
    except FileNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
