"""
Command-line interface for genops.

This module is responsible for argument parsing and delegating to the
ProjectEngine. Results are printed to stdout as JSON; diagnostics go to
stderr through logging.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any, List, Optional

from .config import Config
from .domain import ApplyResult, RollbackPreviewItem
from .engine import ProjectEngine
from .errors import GenOpsError, OpParseError, UnclosedWriteError
from .logging_utils import configure_logging
from .store import JsonProjectStore

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_UNCLOSED_WRITE = 2
EXIT_INTERRUPTED = 130


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="genops",
        description=(
            "Apply machine-generated operation markup to a sandboxed project, "
            "inspect the operation log, diff snapshots and roll back."
        ),
    )
    parser.add_argument(
        "--store",
        default=Config.store_dir,
        help="Directory holding project models and operation logs (default: %(default)s).",
    )
    parser.add_argument(
        "--projects-dir",
        default=Config.projects_dir,
        help="Directory containing one sandbox directory per project (default: %(default)s).",
    )
    parser.add_argument(
        "--max-write-bytes",
        type=int,
        default=Config.max_write_bytes,
        help="Drop writes larger than this many bytes (default: %(default)s).",
    )
    parser.add_argument(
        "--no-semantic",
        dest="semantic_diff",
        action="store_false",
        help="Skip the formatting-only refinement when diffing.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be specified multiple times).",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init", help="Create a project with an empty model.")
    init.add_argument("project")
    init.add_argument("--name", default="Session", help="Display name of the project.")

    apply = sub.add_parser("apply", help="Apply operation markup to a project.")
    apply.add_argument("project")
    apply.add_argument(
        "markup",
        nargs="?",
        default="-",
        help="File containing operation markup, or '-' for stdin (default).",
    )

    log = sub.add_parser("log", help="List operation log entries, most recent first.")
    log.add_argument("project")
    log.add_argument("--limit", type=int, default=None)
    log.add_argument("--cursor", type=int, default=None, help="Only entries with a smaller id.")

    diff = sub.add_parser("diff", help="Diff an entry's snapshot against the current model.")
    diff.add_argument("project")
    diff.add_argument("entry", type=int)
    diff.add_argument("--mode", choices=("pre", "post"), default="post")
    diff.add_argument(
        "--against",
        type=int,
        default=None,
        help="Compare with this entry's post snapshot instead of the current model.",
    )

    rollback = sub.add_parser("rollback", help="Restore files from an entry's snapshot.")
    rollback.add_argument("project")
    rollback.add_argument("entry", type=int)
    rollback.add_argument("--mode", choices=("pre", "post"), default="post")
    rollback.add_argument(
        "--file",
        dest="files",
        action="append",
        default=None,
        help="Restrict to this file (repeatable). Defaults to the entry's own files.",
    )
    rollback.add_argument(
        "--dry-run",
        action="store_true",
        help="Only report which files would change.",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    config = Config(
        store_dir=args.store,
        projects_dir=args.projects_dir,
        max_write_bytes=args.max_write_bytes,
        semantic_diff=args.semantic_diff,
        verbosity=args.verbose,
    )

    configure_logging(verbosity=config.verbosity)
    engine = ProjectEngine(JsonProjectStore(config.store_dir), config)

    try:
        payload = _dispatch(engine, args)
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    except UnclosedWriteError as exc:
        print(f"genops: error: {exc}", file=sys.stderr)
        return EXIT_UNCLOSED_WRITE
    except GenOpsError as exc:
        print(f"genops: error: {exc}", file=sys.stderr)
        return EXIT_ERROR
    except OSError as exc:
        print(f"genops: error: {exc}", file=sys.stderr)
        return EXIT_ERROR

    print(json.dumps(payload, indent=2))
    return EXIT_OK


def _dispatch(engine: ProjectEngine, args: argparse.Namespace) -> Any:
    if args.command == "init":
        model = engine.create_project(args.project, name=args.name)
        return {"projectId": args.project, "model": model.to_dict()}

    if args.command == "apply":
        raw = _read_markup(args.markup)
        outcome = engine.run_batch(args.project, raw)
        return {
            "projectId": args.project,
            "entryId": outcome.entry.id,
            "summary": outcome.batch.summary,
            "operations": _apply_result_to_dict(outcome.result),
            "filesTouched": outcome.entry.files_touched,
            "bytesWritten": outcome.entry.bytes_written,
        }

    if args.command == "log":
        entries = engine.list_log(args.project, cursor=args.cursor, limit=args.limit)
        return {"projectId": args.project, "logs": [e.to_summary_dict() for e in entries]}

    if args.command == "diff":
        if args.against is not None:
            result = engine.diff_entries(args.project, args.entry, args.against)
        else:
            result = engine.diff_entry(args.project, args.entry, mode=args.mode)
        return {"projectId": args.project, "mode": args.mode, "diff": result.to_dict()}

    if args.command == "rollback":
        if args.dry_run:
            items = engine.preview_rollback(args.project, args.entry, mode=args.mode, files=args.files)
            return {"dryRun": True, "mode": args.mode, "delta": [_preview_to_dict(i) for i in items]}

        outcome = engine.rollback(args.project, args.entry, mode=args.mode, files=args.files)
        return {
            "ok": True,
            "mode": args.mode,
            "writes": outcome.result.writes,
            "removed": outcome.result.removed,
            "failed": outcome.result.failed,
            "derived": args.files is None,
            "entryId": outcome.entry.id,
        }

    raise GenOpsError(f"unknown command {args.command!r}")


def _read_markup(source: str) -> str:
    try:
        if source == "-":
            return sys.stdin.read()
        with open(source, encoding="utf-8") as fh:
            return fh.read()
    except UnicodeDecodeError as exc:
        name = "stdin" if source == "-" else source
        raise OpParseError(f"{name}: markup is not valid UTF-8 ({exc})") from exc


def _apply_result_to_dict(result: ApplyResult) -> dict:
    return {
        "writes": [{"path": w.path, "bytes": w.bytes} for w in result.writes],
        "renames": [{"from": r.from_path, "to": r.to_path, "ok": r.ok} for r in result.renames],
        "deletes": [{"path": d.path, "ok": d.ok} for d in result.deletes],
        "dependencies": list(result.dependencies),
        "skipped": [{"kind": s.kind, "path": s.path, "reason": s.reason} for s in result.skipped],
    }


def _preview_to_dict(item: RollbackPreviewItem) -> dict:
    return {
        "file": item.file,
        "before": item.before_hash,
        "after": item.after_hash,
        "changed": item.changed,
    }


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
