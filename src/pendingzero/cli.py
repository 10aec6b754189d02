"""Command-line interface."""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from typing import Any, Sequence

from pydantic import ValidationError

from pendingzero.config import Settings
from pendingzero.controller import ConvergenceController
from pendingzero.failures import AdapterObserveFailed
from pendingzero.factory import (
    build_adapter,
    build_backoff,
    build_classifier,
    build_convergence_config,
    build_recorder,
)
from pendingzero.recorder import AuditLogRecorder, CompositeRecorder
from pendingzero.state import ConvergenceResult, StopReason

EXIT_CONVERGED = 0
EXIT_INCOMPLETE = 1
EXIT_UNAVAILABLE = 2


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pendingzero", description="Apply pending migrations until none remain"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_target_args(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--base-url", dest="base_url")
        sub.add_argument("--api-key", dest="api_key")
        sub.add_argument("--user-id", dest="user_id")
        sub.add_argument(
            "--simulate",
            type=int,
            dest="simulate",
            help="Run against an in-process target with N pending migrations",
        )

    converge = subparsers.add_parser("converge", help="Apply migrations until zero pending")
    add_target_args(converge)
    converge.add_argument("--max-attempts", type=int, dest="max_attempts")
    converge.add_argument("--timeout", type=float, dest="timeout")
    converge.add_argument("--max-rate-limits", type=int, dest="max_rate_limits")
    converge.add_argument("--base-delay-ms", type=int, dest="base_delay_ms")
    converge.add_argument("--max-delay-ms", type=int, dest="max_delay_ms")
    converge.add_argument("--rate-limit-delay-ms", type=int, dest="rate_limit_delay_ms")
    converge.add_argument("--success-pause-ms", type=int, dest="success_pause_ms")
    converge.add_argument("--workspace", dest="workspace")
    converge.add_argument("--run-id", dest="run_id")
    converge.add_argument(
        "--no-initial-check", action="store_true", dest="no_initial_check"
    )

    status = subparsers.add_parser("status", help="Show pending and applied counts")
    add_target_args(status)
    return parser.parse_args(argv)


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    data: dict[str, Any] = settings.model_dump()
    if getattr(args, "base_url", None):
        data["target_base_url"] = args.base_url
    if getattr(args, "api_key", None):
        data["target_api_key"] = args.api_key
    if getattr(args, "user_id", None):
        data["target_user_id"] = args.user_id
    if getattr(args, "max_attempts", None) is not None:
        data["max_attempts"] = args.max_attempts
    if getattr(args, "timeout", None) is not None:
        data["per_attempt_timeout_seconds"] = args.timeout
    if getattr(args, "max_rate_limits", None) is not None:
        data["max_consecutive_rate_limits"] = args.max_rate_limits
    if getattr(args, "base_delay_ms", None) is not None:
        data["base_delay_ms"] = args.base_delay_ms
    if getattr(args, "max_delay_ms", None) is not None:
        data["max_delay_ms"] = args.max_delay_ms
    if getattr(args, "rate_limit_delay_ms", None) is not None:
        data["rate_limit_delay_ms"] = args.rate_limit_delay_ms
    if getattr(args, "success_pause_ms", None) is not None:
        data["success_pause_ms"] = args.success_pause_ms
    if getattr(args, "workspace", None):
        data["workspace_dir"] = args.workspace
    if getattr(args, "no_initial_check", False):
        data["initial_pending_check"] = False
    return Settings(**data)


def exit_code(result: ConvergenceResult) -> int:
    if result.converged:
        return EXIT_CONVERGED
    if result.stop_reason is StopReason.ADAPTER_UNAVAILABLE:
        return EXIT_UNAVAILABLE
    return EXIT_INCOMPLETE


def run_converge(settings: Settings, args: argparse.Namespace) -> int:
    config = build_convergence_config(settings)
    adapter = build_adapter(settings, simulate=args.simulate)
    recorder = build_recorder(settings, run_id=args.run_id)
    cancel = threading.Event()
    previous = signal.signal(signal.SIGINT, lambda signum, frame: cancel.set())
    try:
        result = ConvergenceController().run(
            adapter,
            build_classifier(settings),
            build_backoff(settings),
            recorder,
            config,
            cancel=cancel,
        )
    finally:
        signal.signal(signal.SIGINT, previous)
    print("Stop reason:", result.stop_reason.value)
    print("Total applied:", result.total_applied)
    print("Attempts used:", f"{result.attempts_used}/{config.max_attempts}")
    print(
        "Final pending count:",
        "unknown" if result.final_pending_count is None else result.final_pending_count,
    )
    print("Zero pending achieved:", "yes" if result.converged else "no")
    if result.message:
        print("Detail:", result.message)
    report = _report_path(recorder)
    if report:
        print("Report:", report)
    return exit_code(result)


def run_status(settings: Settings, args: argparse.Namespace) -> int:
    adapter = build_adapter(settings, simulate=args.simulate)
    try:
        observed = adapter.observe()
    except AdapterObserveFailed as exc:
        print(f"Could not read migration status: {exc}", file=sys.stderr)
        return EXIT_UNAVAILABLE
    print("Pending migrations:", observed.pending_count)
    print("Applied migrations:", observed.applied_count)
    for name in observed.pending_items:
        print("  -", name)
    return EXIT_CONVERGED if observed.pending_count == 0 else EXIT_INCOMPLETE


def _report_path(recorder: Any) -> str | None:
    recorders = recorder.recorders if isinstance(recorder, CompositeRecorder) else [recorder]
    for item in recorders:
        if isinstance(item, AuditLogRecorder) and item.report_path is not None:
            return str(item.report_path)
    return None


def main(argv: Sequence[str] | None = None) -> None:
    args = parse_args(argv)
    try:
        settings = apply_overrides(Settings(), args)
        if args.command == "converge":
            build_convergence_config(settings)
    except ValidationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        raise SystemExit(EXIT_UNAVAILABLE) from exc
    if args.command == "status":
        raise SystemExit(run_status(settings, args))
    raise SystemExit(run_converge(settings, args))


if __name__ == "__main__":
    main()
