"""CLI entry point for Boson."""

import argparse
import asyncio
import logging
import os
import sys
import time
from dataclasses import dataclass
from typing import Any, Optional, TextIO

from .chat import ChatClient
from .constants import DEFAULT_PROJECT_ID, USER_DATA_DIR
from .domain.chat import Thread
from .endpoints import fetch_models, test_connection
from .errors import EndpointRequestError, ThreadStoreError
from .keys import KeyringCredentialStore
from .logging import build_run_log_path, log_event, sanitize_error_message, setup_logging
from .orchestrator import STREAM_CHANNEL_PREFIX, TITLE_UPDATED_CHANNEL, ChatOrchestrator
from .power import ProcessSleepInhibitor
from .registry import ProfileRegistry
from .settings import SettingsStore
from .threads import ThreadStore

__all__ = ["main", "build_parser", "Services", "build_services", "ConsoleSink"]


@dataclass
class Services:
    """Wired application services for one data directory."""

    settings: SettingsStore
    threads: ThreadStore
    registry: ProfileRegistry
    credentials: KeyringCredentialStore
    client: ChatClient
    orchestrator: ChatOrchestrator

    async def aclose(self) -> None:
        await self.orchestrator.aclose()
        await self.client.aclose()


def build_services(data_dir: str) -> Services:
    settings = SettingsStore(data_dir)
    credentials = KeyringCredentialStore()
    registry = ProfileRegistry(settings, secrets=credentials)
    threads = ThreadStore(data_dir)
    client = ChatClient(registry, credentials)
    orchestrator = ChatOrchestrator(client, threads, settings, ProcessSleepInhibitor())
    return Services(settings, threads, registry, credentials, client, orchestrator)


class ConsoleSink:
    """Writes stream events to a text stream as they arrive."""

    def __init__(self, out: Optional[TextIO] = None, *, show_reasoning: bool = False):
        self._out = out or sys.stdout
        self._show_reasoning = show_reasoning
        self.closed = False
        self.error: Optional[str] = None

    def send(self, channel: str, payload: dict[str, Any]) -> None:
        if channel == TITLE_UPDATED_CHANNEL:
            self._out.write(f"\n[title] {payload['title']}\n")
        elif channel == STREAM_CHANNEL_PREFIX + "delta":
            self._out.write(payload["chunk"])
        elif channel == STREAM_CHANNEL_PREFIX + "reasoning" and self._show_reasoning:
            self._out.write(payload["chunk"])
        elif channel == STREAM_CHANNEL_PREFIX + "reasoning_done" and self._show_reasoning:
            self._out.write("\n\n")
        elif channel == STREAM_CHANNEL_PREFIX + "done":
            self._out.write("\n")
        elif channel == STREAM_CHANNEL_PREFIX + "error":
            self.error = f"{payload['error']}: {payload['message']}"
        self._out.flush()


def _format_thread(thread: Thread) -> str:
    stamp = thread.archived_at or thread.created_at
    return f"{thread.id}  {stamp}  {thread.title}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="boson",
        description="Boson - chat with OpenAI-compatible endpoints",
    )
    parser.add_argument(
        "-d",
        "--data-dir",
        default=USER_DATA_DIR,
        help=f"Directory holding settings and threads (default: {USER_DATA_DIR})",
    )
    parser.add_argument("-l", "--log", help="Path to log file (default: a new file under DATA_DIR/logs)")
    commands = parser.add_subparsers(dest="command", required=True)

    threads = commands.add_parser("threads", help="Manage threads")
    thread_commands = threads.add_subparsers(dest="action", required=True)
    for name, help_text in (("list", "List active threads"), ("archived", "List archived threads")):
        sub = thread_commands.add_parser(name, help=help_text)
        sub.add_argument("--project", default=DEFAULT_PROJECT_ID)
    new = thread_commands.add_parser("new", help="Create a thread")
    new.add_argument("--project", default=DEFAULT_PROJECT_ID)
    new.add_argument("--title")
    for name, help_text in (
        ("show", "Print a thread's messages"),
        ("archive", "Archive a thread"),
        ("unarchive", "Restore an archived thread"),
    ):
        sub = thread_commands.add_parser(name, help=help_text)
        sub.add_argument("thread_id")

    chat = commands.add_parser("chat", help="Send a message to a thread and stream the reply")
    chat.add_argument("thread_id")
    chat.add_argument("text")
    chat.add_argument("-m", "--model", required=True, help="Model profile id")

    models = commands.add_parser("models", help="Endpoint model listing")
    model_commands = models.add_subparsers(dest="action", required=True)
    fetch = model_commands.add_parser("fetch", help="List models served by an endpoint")
    fetch.add_argument("endpoint_id")

    endpoints = commands.add_parser("endpoints", help="Endpoint checks")
    endpoint_commands = endpoints.add_subparsers(dest="action", required=True)
    check = endpoint_commands.add_parser("test", help="Test the connection to an endpoint")
    check.add_argument("endpoint_id")

    return parser


async def _run_threads(services: Services, args: argparse.Namespace) -> int:
    store = services.threads
    if args.action in ("list", "archived"):
        listing = store.list if args.action == "list" else store.list_archived
        for thread in await listing(args.project):
            print(_format_thread(thread))
        return 0
    if args.action == "new":
        thread = await store.create(args.project, args.title)
        print(thread.id)
        return 0
    if args.action == "show":
        thread = await store.get(args.thread_id)
        if thread is None:
            print(f"Error: thread not found: {args.thread_id}")
            return 1
        print(f"# {thread.title}")
        for message in thread.messages:
            print(f"\n[{message.role}]\n{message.content}")
        return 0

    toggle = store.archive if args.action == "archive" else store.unarchive
    if not await toggle(args.thread_id):
        print(f"Error: thread not found: {args.thread_id}")
        return 1
    return 0


async def _run_chat(services: Services, args: argparse.Namespace) -> int:
    app_settings = await services.settings.get_app_settings()
    sink = ConsoleSink(show_reasoning=app_settings.general.show_reasoning)
    outcome = await services.orchestrator.send_message_stream(
        args.thread_id, args.text, args.model, sink
    )
    # Let the title arrive before exiting.
    await services.orchestrator.aclose()
    if not outcome.ok:
        print(f"Error: {sink.error or outcome.terminal.to_payload().get('message')}")
        return 1
    return 0


async def _run_models(services: Services, args: argparse.Namespace) -> int:
    try:
        listings = await fetch_models(services.registry, services.credentials, args.endpoint_id)
    except EndpointRequestError as e:
        print(f"Error: {e}")
        return 1
    for listing in listings:
        print(listing.id)
    return 0


async def _run_endpoints(services: Services, args: argparse.Namespace) -> int:
    result = await test_connection(services.registry, services.credentials, args.endpoint_id)
    print("OK" if result.ok else f"Failed: {result.message}")
    return 0 if result.ok else 1


_HANDLERS = {
    "threads": _run_threads,
    "chat": _run_chat,
    "models": _run_models,
    "endpoints": _run_endpoints,
}


async def run_command(args: argparse.Namespace, services: Optional[Services] = None) -> int:
    """Dispatch a parsed command; returns the process exit code."""
    owned = services is None
    services = services or build_services(args.data_dir)
    try:
        return await _HANDLERS[args.command](services, args)
    finally:
        if owned:
            await services.aclose()


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for the Boson CLI."""
    args = build_parser().parse_args(argv)
    app_started = time.perf_counter()
    args.data_dir = os.path.expanduser(args.data_dir)

    try:
        log_path = args.log or build_run_log_path(os.path.join(args.data_dir, "logs"))
        setup_logging(log_path)
        log_event(
            "app_start",
            level=logging.INFO,
            command=args.command,
            action=getattr(args, "action", None),
            data_dir=args.data_dir,
            log_file=log_path,
        )
        exit_code = asyncio.run(run_command(args))
        log_event(
            "app_stop",
            level=logging.INFO,
            reason="normal",
            exit_code=exit_code,
            uptime_ms=round((time.perf_counter() - app_started) * 1000, 1),
        )
    except KeyboardInterrupt:
        log_event(
            "app_stop",
            level=logging.INFO,
            reason="keyboard_interrupt",
            uptime_ms=round((time.perf_counter() - app_started) * 1000, 1),
        )
        print("\nInterrupted")
        sys.exit(0)
    except ThreadStoreError as e:
        print(f"Error: {e}")
        log_event(
            "app_stop",
            level=logging.ERROR,
            reason="storage_error",
            error_type=type(e).__name__,
            error=sanitize_error_message(str(e)),
            uptime_ms=round((time.perf_counter() - app_started) * 1000, 1),
        )
        sys.exit(1)
    except Exception as e:
        print(f"Error: {sanitize_error_message(str(e))}")
        log_event(
            "app_stop",
            level=logging.ERROR,
            reason="fatal_error",
            error_type=type(e).__name__,
            error=sanitize_error_message(str(e)),
            uptime_ms=round((time.perf_counter() - app_started) * 1000, 1),
        )
        logging.error("Fatal error: %s", e, exc_info=True)
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
