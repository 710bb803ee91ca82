"""CLI entry point for chat-secretary."""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Awaitable, Callable

from chat_secretary import api
from chat_secretary.app import ChatSecretaryApp
from chat_secretary.config import AppConfig, load_config
from chat_secretary.log import get_logger, setup_logging
from chat_secretary.services.chat_watcher import ChatMonitorData
from chat_secretary.services.completion_engine import MonitoredTask
from chat_secretary.transcript.classifier import DialogClassifier

logger = get_logger(__name__)


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="chat-secretary",
        description="Chat transcript classifier, session ledger and completion monitor",
    )
    config_args = argparse.ArgumentParser(add_help=False)
    config_args.add_argument("-c", "--config", default="config.yaml", help="Path to config file")
    config_args.add_argument("-e", "--env", default=".env", help="Path to .env file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    analyze_parser = subparsers.add_parser("analyze", help="Classify an exported chat transcript")
    analyze_parser.add_argument("file", help="Path to an exported chat JSON file")
    analyze_parser.add_argument("--tool", help="Only report MCP calls of this tool (substring match)")
    analyze_parser.add_argument("--history", action="store_true", help="Include the conversation history")

    history_parser = subparsers.add_parser("history", parents=[config_args], help="List recorded dialog sessions")
    history_parser.add_argument("--limit", type=int, default=api.DEFAULT_HISTORY_LIMIT)
    history_parser.add_argument("--status", help="Only sessions with this status")

    subparsers.add_parser("clear-history", parents=[config_args], help="Forget all recorded sessions")
    subparsers.add_parser("watch", parents=[config_args], help="Watch the chat and record sessions")

    monitor_parser = subparsers.add_parser("monitor", parents=[config_args], help="Drive one task to completion")
    monitor_parser.add_argument("--task-id", required=True, help="Task identifier passed to the oracle")
    monitor_parser.add_argument("--label", default="", help="Human-readable task label")
    monitor_parser.add_argument("--prompt", help="Prompt sent into the chat when the task starts")

    tool_parser = subparsers.add_parser("tool", parents=[config_args], help="Run a dialog recall tool")
    tool_parser.add_argument("name", help="Tool name, e.g. chat_secretary_get_request")
    tool_parser.add_argument("--input", default="{}", help="Tool input as a JSON object")

    subparsers.add_parser("config-check", parents=[config_args], help="Validate configuration")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "analyze":
        _analyze(args.file, args.tool, args.history)
        return
    if args.command == "config-check":
        _check_config(args.config, args.env)
        return

    config = _load_or_exit(args.config, args.env)
    setup_logging(config.log_level, json_output=config.log_json)

    if args.command == "history":
        _with_app(config, lambda app: _print_history(app, args.limit, args.status))
    elif args.command == "clear-history":
        _with_app(config, _clear_history)
    elif args.command == "watch":
        _with_app(config, _watch)
    elif args.command == "monitor":
        task = MonitoredTask(task_id=args.task_id, label=args.label, prompt=args.prompt)
        succeeded = _with_app(config, lambda app: _monitor(app, task))
        sys.exit(0 if succeeded else 1)
    elif args.command == "tool":
        try:
            tool_input = json.loads(args.input)
        except json.JSONDecodeError as e:
            print(f"Invalid --input JSON: {e}", file=sys.stderr)
            sys.exit(1)
        _with_app(config, lambda app: _run_tool(app, args.name, tool_input))


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def _analyze(file_path: str, tool_name: str | None, include_history: bool) -> None:
    """Classify a transcript file without touching any storage."""
    try:
        chat_data = json.loads(Path(file_path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Cannot read transcript: {e}", file=sys.stderr)
        sys.exit(1)

    classifier = DialogClassifier()
    session = classifier.get_session_info(chat_data)
    report: dict[str, Any] = {
        "status": classifier.classify(chat_data).to_dict(),
        "requestsCount": classifier.get_requests_count(chat_data),
        "session": asdict(session) if session else None,
        "mcpTools": asdict(classifier.get_mcp_tool_monitoring(chat_data, tool_name)),
    }
    if include_history:
        report["history"] = [asdict(turn) for turn in classifier.get_conversation_history(chat_data)]
    _print_json(report)


def _check_config(config_path: str, env_path: str) -> None:
    """Validate configuration and print summary."""
    try:
        config = load_config(config_path, env_path)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    monitor = config.monitor
    collaborators = config.collaborators
    print(f"Configuration valid: {config_path}")
    print(f"  Data directory: {config.data_dir}")
    print(f"  Storage: {config.storage.db_path} (ledger capacity {config.storage.ledger_capacity})")
    print(f"  Archive: {config.storage.archive_dir}")
    print(f"  Transcript: {collaborators.transcript_path}")
    print(f"    export command: {' '.join(collaborators.export_command or []) or '(none)'}")
    print(f"  Oracle: {' '.join(collaborators.oracle_command or []) or '(none)'}")
    print(f"  Nudge: {' '.join(collaborators.nudge_command or []) or '(none)'}")
    print(
        f"  Monitor: every {monitor.check_interval}s, pause {monitor.pause_threshold}s, "
        f"max wait {monitor.max_wait_time}s, commit tool '{monitor.commit_tool or '-'}'"
    )


def _load_or_exit(config_path: str, env_path: str) -> AppConfig:
    try:
        return load_config(config_path, env_path)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run 'python install.py' first or copy config.example.yaml to config.yaml")
        sys.exit(1)
    except Exception as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)


def _with_app(config: AppConfig, action: Callable[[ChatSecretaryApp], Awaitable[Any]]) -> Any:
    async def _async_main() -> Any:
        app = ChatSecretaryApp(config)
        await app.start()
        try:
            return await action(app)
        finally:
            await app.stop()

    return asyncio.run(_async_main())


async def _print_history(app: ChatSecretaryApp, limit: int, status: str | None) -> None:
    _print_json(api.get_dialog_history(app.ledger, limit=limit, status=status))


async def _clear_history(app: ChatSecretaryApp) -> None:
    app.ledger.clear_history()
    print("Dialog history cleared")


async def _run_tool(app: ChatSecretaryApp, name: str, tool_input: dict[str, Any]) -> None:
    print(await app.tool_registry.execute(name, **tool_input))


def _stop_event() -> asyncio.Event:
    """An event set on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(stop_event.set))
    return stop_event


class _LoggingSubscriber:
    def on_chat_status_update(self, data: ChatMonitorData) -> None:
        logger.info("chat_status", status=data.status, requests=data.requests_count, session_id=data.session_id)

    def on_chat_completed(self) -> None:
        logger.info("chat_completed")

    def on_chat_error(self, error: str) -> None:
        logger.warning("chat_error", error=error)


async def _watch(app: ChatSecretaryApp) -> None:
    stop_event = _stop_event()
    app.watcher.subscribe(_LoggingSubscriber())
    await app.watcher.start()
    await stop_event.wait()


async def _monitor(app: ChatSecretaryApp, task: MonitoredTask) -> bool:
    stop_event = _stop_event()
    outcome: dict[str, Any] = {}

    def _completed() -> None:
        outcome["ok"] = True
        stop_event.set()

    def _failed(reason: str) -> None:
        outcome["ok"] = False
        outcome["reason"] = reason
        stop_event.set()

    engine = app.create_engine(on_completed=_completed, on_failed=_failed)
    await engine.start_task(task)
    await stop_event.wait()
    await engine.close()

    if outcome.get("ok"):
        print(f"Task {task.task_id} completed")
        return True
    print(f"Task {task.task_id} did not complete: {outcome.get('reason', 'interrupted')}", file=sys.stderr)
    return False


if __name__ == "__main__":
    main()
