#!/usr/bin/env python3
"""
chat-engine - terminal front-end

Usage:
  chat-engine models                      # Catalog, selection and recent models
  chat-engine select qwen3:14b            # Make a model active
  chat-engine import a.gguf b.gguf        # Import model files, select the last one
  chat-engine info [MODEL_ID]             # Model metadata
  chat-engine chat [--no-stream]          # Interactive chat (Ctrl-C cancels a reply)
"""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import TextIO

from chat_engine.backend import create_backend
from chat_engine.client import TYPING_PLACEHOLDER, GenerationController
from chat_engine.config import BACKEND, BACKENDS, STATE_PATH, STREAMING_ENABLED, list_backends
from chat_engine.core.models import ConversationTurn
from chat_engine.store import JsonKeyValueStore, RecentModels, SessionStore
from chat_engine.utils import setup_logging

logger = logging.getLogger(__name__)


class StreamPrinter:
    """Writes the visible part of a streaming turn as it grows."""

    def __init__(self, controller: GenerationController, out: TextIO | None = None, show_reasoning: bool = False):
        self.controller = controller
        self.out = out or sys.stdout
        self.show_reasoning = show_reasoning
        self.reset()

    def reset(self) -> None:
        self._visible = ""
        self._reasoning = ""

    def __call__(self, turn: ConversationTurn) -> None:
        if turn.assistant == TYPING_PLACEHOLDER:
            return
        result = self.controller.render(turn)

        if self.show_reasoning and result.reasoning:
            self._reasoning = self._write_growth(self._reasoning, result.reasoning, prefix="  | ")

        self._visible = self._write_growth(self._visible, result.visible)
        self.out.flush()

    def _write_growth(self, printed: str, current: str, prefix: str = "") -> str:
        if current.startswith(printed):
            self.out.write(current[len(printed) :].replace("\n", "\n" + prefix))
        else:
            # Completion replaced the text; print the final version in full
            self.out.write("\n" + prefix + current.replace("\n", "\n" + prefix))
        return current


def print_models(store: SessionStore) -> None:
    if store.error:
        print(f"Error: {store.error}")
    if not store.models:
        print("No models found.")
        return
    selected_id = store.selected.id if store.selected else None
    for model in store.models:
        marker = "*" if model.id == selected_id else " "
        family = f" [{model.family}]" if model.family else ""
        print(f"{marker} {model.id}{family} ({model.backend_hint}, {model.file_type})")
    if store.recent_models:
        print("Recent: " + ", ".join(m.id for m in store.recent_models))


async def chat_loop(
    store: SessionStore, controller: GenerationController, show_reasoning: bool
) -> None:
    printer = StreamPrinter(controller, show_reasoning=show_reasoning)
    controller.on_change = printer
    loop = asyncio.get_running_loop()

    model = store.selected
    print(f"Model: {model.id if model else '(none)'}")
    print("Commands: /new, /stream on|off, /quit. Ctrl-C cancels a reply.")

    while True:
        try:
            prompt = await asyncio.to_thread(input, "\n> ")
        except EOFError:
            break
        command = prompt.strip()
        if command in ("/quit", "/exit"):
            break
        if command == "/new":
            controller.new_chat()
            print("New chat.")
            continue
        if command.startswith("/stream"):
            controller.streaming_enabled = command.endswith("on")
            print(f"Streaming: {'on' if controller.streaming_enabled else 'off'}")
            continue

        printer.reset()
        try:
            loop.add_signal_handler(signal.SIGINT, lambda: asyncio.ensure_future(controller.cancel()))
        except (NotImplementedError, RuntimeError):
            pass
        try:
            turn = await controller.send(prompt, model.id if model else None)
            await controller.wait_idle()
        finally:
            try:
                loop.remove_signal_handler(signal.SIGINT)
            except (NotImplementedError, RuntimeError):
                pass
        if turn is not None:
            print()


async def run(args: argparse.Namespace) -> int:
    if args.command == "backends":
        for name, description in list_backends().items():
            print(f"{name:10} {description}")
        return 0

    backend = create_backend(args.backend)
    store = SessionStore(backend, RecentModels(JsonKeyValueStore(args.state)))
    try:
        if args.command == "import":
            imported = await store.import_models(args.paths, args.family)
            for error in store.import_errors:
                print(f"Failed: {error}")
            for model in imported:
                print(f"Imported: {model.id}")
            return 0 if imported else 1

        await store.refresh()

        if args.command == "models":
            print_models(store)
            return 1 if store.error else 0

        if args.command == "select":
            if await store.select_id(args.model_id) is None:
                print(f"Unknown model: {args.model_id}")
                return 1
            print(f"Selected: {args.model_id}")
            return 0

        if args.command == "info":
            model = store.get(args.model_id) if args.model_id else store.selected
            if model is None:
                print("No such model.")
                return 1
            meta = await store.metadata(model)
            if meta is None:
                print(f"Error: {store.metadata_errors.get(model.id)}")
                return 1
            for key, value in meta.model_dump(exclude={"raw"}).items():
                if value is not None:
                    print(f"{key:18} {value}")
            return 0

        if args.model:
            await store.select_id(args.model)
        controller = GenerationController(backend, streaming_enabled=not args.no_stream)
        await chat_loop(store, controller, args.show_reasoning)
        return 0
    finally:
        await backend.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chat-engine", description="Local LLM chat client")
    parser.add_argument(
        "--backend",
        choices=list(BACKENDS),
        default=BACKEND,
        help=f"Generation backend (default: {BACKEND})",
    )
    parser.add_argument("--state", type=Path, default=STATE_PATH, help="Client state file")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("backends", help="List configured backends")
    sub.add_parser("models", help="List models")
    select = sub.add_parser("select", help="Select the active model")
    select.add_argument("model_id")
    imp = sub.add_parser("import", help="Import model files")
    imp.add_argument("paths", nargs="+", type=Path)
    imp.add_argument("--family", help="Family (default: parent directory name)")
    info = sub.add_parser("info", help="Show model metadata")
    info.add_argument("model_id", nargs="?")
    chat = sub.add_parser("chat", help="Interactive chat")
    chat.add_argument("--model", help="Model id to select first")
    chat.add_argument(
        "--no-stream", action="store_true", default=not STREAMING_ENABLED, help="Single-shot replies"
    )
    chat.add_argument("--show-reasoning", action="store_true", help="Print reasoning blocks")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0

    setup_logging(debug=args.debug)
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
