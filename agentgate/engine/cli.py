"""CLI entry point for the orchestration engine.

Usage:
    agentgate-run --tools-file tools.py "Create a task for the login bug"
    agentgate-run --goal-file goal.md --video-url https://example.com/v/1
    agentgate-run --set-mode wait
    agentgate-run --show-settings
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import threading
import time
from pathlib import Path

from .approval import parse_decision
from .config import apply_log_level
from .errors import InvalidDecisionError, OrchestrationError
from .models import ApprovalDecision, ApprovalMode, RunContext, RunOptions
from .yaml_config import AgentGateConfig, find_config_file, load_yaml_config

logger = logging.getLogger(__name__)

DECISION_PROMPT = "[a]pprove, [w]hitelist and approve, [d]eny, [c]hange request > "


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentgate-run",
        description="Run a goal through the tool-calling agent with human approval",
    )
    parser.add_argument(
        "goal",
        nargs="?",
        default=None,
        help="The goal to accomplish (inline string)",
    )
    parser.add_argument(
        "--goal-file", "-f",
        default=None,
        help="Read the goal from a file (.md, .txt, etc.)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="YAML config file (default: .agentgate/agentgate.yaml or agentgate.yaml)",
    )
    parser.add_argument(
        "--tools-file",
        default=None,
        help="Python file that exports a register_tools(registry) function",
    )
    parser.add_argument(
        "--video-url",
        default=None,
        help="URL of the uploaded video to reference in created content",
    )
    parser.add_argument(
        "--server",
        action="append",
        dest="servers",
        default=None,
        help="Only expose tools from this server (repeatable)",
    )
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=None,
        help="Maximum model turns (default: 20)",
    )
    parser.add_argument(
        "--set-mode",
        choices=[m.value for m in ApprovalMode],
        default=None,
        help="Persist a new approval mode and exit",
    )
    parser.add_argument(
        "--show-settings",
        action="store_true",
        help="Print the approval mode and whitelist and exit",
    )
    parser.add_argument(
        "--remove-whitelist",
        metavar="TOOL_ID",
        default=None,
        help="Remove a tool from the whitelist and exit",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    # Configure logging; -v wins over the configured level
    logging.basicConfig(
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        datefmt="%H:%M:%S",
    )
    apply_log_level("DEBUG" if args.verbose else os.getenv("AGENTGATE_LOG_LEVEL", "INFO"))

    from agentgate.adapters.orchestrator import OrchestratorBridge

    yaml_config = _load_config(args.config)
    if yaml_config is not None and not args.verbose:
        apply_log_level(yaml_config.engine.log_level)
    bridge = OrchestratorBridge()
    try:
        bridge.configure(yaml_config, tools_file=args.tools_file)
    except (OrchestrationError, OSError, ValueError) as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    if _handle_settings_args(bridge, args):
        sys.exit(0)

    goal = _resolve_goal(args.goal, args.goal_file)
    options = RunOptions(
        max_tool_iterations=args.max_iterations,
        server_filter=args.servers,
    )
    context = RunContext(video_url=args.video_url)

    try:
        result = asyncio.run(_run_interactive(bridge, goal, context, options))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        sys.exit(1)
    except OrchestrationError as exc:
        print(f"\nError: {exc}")
        sys.exit(1)

    print("\n=== Result ===\n")
    print(result if result is not None else "(no result)")


def _load_config(path: str | None) -> AgentGateConfig | None:
    config_path = Path(path) if path else find_config_file()
    if config_path is None:
        return None
    try:
        return load_yaml_config(config_path)
    except (OSError, ValueError) as exc:
        print(f"Error: Cannot load config {config_path}: {exc}")
        sys.exit(1)


def _handle_settings_args(bridge, args: argparse.Namespace) -> bool:
    """Apply settings-only flags. Returns True if nothing else should run."""
    handled = False
    if args.set_mode:
        bridge.set_mode(ApprovalMode.parse(args.set_mode))
        print(f"Approval mode set to {args.set_mode}")
        handled = True
    if args.remove_whitelist:
        if bridge.remove_whitelist_entry(args.remove_whitelist):
            print(f"Removed {args.remove_whitelist} from the whitelist")
        else:
            print(f"{args.remove_whitelist} is not whitelisted")
        handled = True
    if args.show_settings:
        print(json.dumps(bridge.get_settings().to_dict(), indent=2))
        handled = True
    return handled


def _resolve_goal(inline: str | None, file_path: str | None) -> str:
    """Get goal from inline arg or file. Exactly one must be provided."""
    if inline and file_path:
        print("Error: Provide either a goal string or --goal-file, not both.")
        sys.exit(1)

    if file_path:
        p = Path(file_path)
        if not p.is_file():
            print(f"Error: Goal file not found: {file_path}")
            sys.exit(1)
        return p.read_text(encoding="utf-8").strip()

    if inline:
        return inline

    print("Error: Provide a goal string or --goal-file.")
    sys.exit(1)


class _StdinLines:
    """Reads stdin on a daemon thread so a pending prompt never blocks exit."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[str] | None = None
        self._thread: threading.Thread | None = None

    def _pump(self, loop: asyncio.AbstractEventLoop, queue: asyncio.Queue[str]) -> None:
        for line in sys.stdin:
            loop.call_soon_threadsafe(queue.put_nowait, line.rstrip("\n"))

    async def readline(self, timeout: float | None = None) -> str | None:
        if self._queue is None:
            self._queue = asyncio.Queue()
            self._thread = threading.Thread(
                target=self._pump,
                args=(asyncio.get_running_loop(), self._queue),
                daemon=True,
            )
            self._thread.start()
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None


async def _prompt_decision(
    stdin: _StdinLines, event, deadline: float | None,
) -> ApprovalDecision | None:
    """Ask the user about one pending tool call. None if the deadline passes."""
    print(f"\n--- Approval required: {event.tool_name} ---")
    print(json.dumps(event.arguments, indent=2, default=str))
    if deadline is not None:
        print(f"(auto-approves in {max(0.0, deadline - time.time()):.0f}s)")

    while True:
        print(DECISION_PROMPT, end="", flush=True)
        timeout = None if deadline is None else max(0.0, deadline - time.time())
        answer = await stdin.readline(timeout)
        if answer is None:
            print()
            return None
        choice = answer.strip().lower()[:1]
        if choice == "a":
            return ApprovalDecision.approve()
        if choice == "w":
            return ApprovalDecision.approve(whitelist=True)
        if choice == "d":
            print("Reason (optional) > ", end="", flush=True)
            feedback = await stdin.readline()
            return ApprovalDecision.deny_stop((feedback or "").strip() or None)
        if choice == "c":
            print("What should change? > ", end="", flush=True)
            feedback = await stdin.readline()
            try:
                return parse_decision({"kind": "request_changes", "feedback": feedback or ""})
            except InvalidDecisionError as exc:
                print(f"  {exc}")
                continue
        print("  Please answer a, w, d or c.")


def _print_event(event) -> None:
    event_type = event.event_type
    if event_type == "reasoning":
        print(f"\n[thinking] {event.text}")
    elif event_type == "tool_call":
        print(f"\n[tool] {event.tool_name}")
    elif event_type == "tool_result":
        marker = "error" if event.is_error else "result"
        print(f"[{marker}] {event.result[:500]}")
    elif event_type == "tool_denied":
        print(f"\n[denied] {event.reason}")
    elif event_type == "tool_approval_resolved" and event.source == "timer":
        print(f"[auto-approved] {event.tool_name}")


async def _run_interactive(bridge, goal: str, context: RunContext, options: RunOptions) -> str | None:
    stdin = _StdinLines()

    async def consume() -> None:
        async for event in bridge.event_bus.consume():
            _print_event(event)
            if event.event_type != "tool_approval_required":
                continue
            decision = await _prompt_decision(stdin, event, event.auto_approve_at)
            if decision is not None and not bridge.resolve_approval(event.request_id, decision):
                print("  (request was already resolved)")

    consumer = asyncio.create_task(consume())
    try:
        return await bridge.run(goal, context=context, options=options)
    finally:
        consumer.cancel()
        try:
            await consumer
        except asyncio.CancelledError:
            pass
        await bridge.shutdown()


if __name__ == "__main__":
    main()
