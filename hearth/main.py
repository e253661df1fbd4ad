"""Hearth entry point: wires the components together and runs a terminal chat."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass

from hearth.chat.manager import ConversationManager
from hearth.config import Settings, settings
from hearth.llm.engine import GenerationParams
from hearth.llm.local import LocalServerEngine
from hearth.llm.models import ModelCatalog, display_name
from hearth.memory.encoder import FeatureEncoder
from hearth.memory.manager import MemoryManager
from hearth.orchestrator import (
    ERROR_PREFIX,
    ConversationBusyError,
    GenerationOrchestrator,
    ModelNotReadyError,
    PersistenceError,
)
from hearth.store import Store

logger = logging.getLogger(__name__)


@dataclass
class App:
    """All long-lived components, constructed once per process."""

    store: Store
    conversations: ConversationManager
    memories: MemoryManager
    orchestrator: GenerationOrchestrator
    default_model_id: str


async def build_app(config: Settings) -> App:
    """Construct every component from *config* and load the caches."""
    store = Store(config.database_path)
    encoder = FeatureEncoder(config.embedding_dimension)
    conversations = ConversationManager(store, default_title=config.default_title)
    memories = MemoryManager(
        store,
        encoder,
        threshold=config.relevance_threshold,
        default_top_k=config.memory_top_k,
    )
    engine = LocalServerEngine(
        config.inference_base_url,
        timeout=config.inference_timeout,
        default_model=config.default_model_id,
    )
    orchestrator = GenerationOrchestrator(
        conversations,
        memories,
        engine,
        provisioning=ModelCatalog(config.models_dir),
        system_prompt=config.system_prompt,
        params=GenerationParams(
            temperature=config.temperature,
            top_p=config.top_p,
            max_tokens=config.max_tokens,
        ),
        history_window=config.history_window,
        memory_top_k=config.memory_top_k,
    )

    counts = await store.count_rows()
    logger.info("Database %s: %s", store.path, counts)
    await conversations.reload()
    await memories.load()
    return App(store, conversations, memories, orchestrator, config.default_model_id)


# -- Commands ------------------------------------------------------------------


async def _chat(app: App, conversation_id: str | None) -> int:
    if conversation_id:
        if not app.conversations.select(conversation_id):
            print(f"No conversation {conversation_id}", file=sys.stderr)
            return 1
    print("Type a message. /remember <text> saves a memory, /new starts over, /quit exits.")

    while True:
        try:
            line = (await asyncio.to_thread(input, "> ")).strip()
        except EOFError:
            return 0
        if not line:
            continue
        if line == "/quit":
            return 0
        if line == "/new":
            app.conversations.select(None)
            continue
        if line.startswith("/remember "):
            saved = await app.memories.remember(line.removeprefix("/remember ").strip())
            print("Memory saved" if saved else "Could not save memory")
            continue

        conversation = app.conversations.active
        if conversation is None:
            conversation = await app.conversations.create_conversation(app.default_model_id)
            if conversation is None:
                print("Could not create a conversation", file=sys.stderr)
                return 1

        try:
            async for fragment in app.orchestrator.respond(conversation.id, line):
                print(fragment, end="", flush=True)
        except (ModelNotReadyError, ConversationBusyError, PersistenceError) as exc:
            print(f"\n[{type(exc).__name__}] {exc}", file=sys.stderr)
            continue
        print()

        last = app.conversations.get(conversation.id)
        if last and last.messages and last.messages[-1].content.startswith(ERROR_PREFIX):
            print(last.messages[-1].content)


def _list_conversations(app: App) -> int:
    for c in app.conversations.conversations:
        print(f"{c.id}  {c.title}  ({display_name(c.model_id)}, {len(c.messages)} messages)")
    return 0


def _list_memories(app: App) -> int:
    for item in app.memories.items:
        print(f"{item.id}  {item.text}")
    return 0


async def run(args: argparse.Namespace, config: Settings) -> int:
    app = await build_app(config)
    if args.command == "chat":
        return await _chat(app, args.conversation)
    if args.command == "remember":
        return 0 if await app.memories.remember(" ".join(args.text)) else 1
    if args.command == "memories":
        return _list_memories(app)
    if args.command == "forget":
        ok = await (app.memories.forget_all() if args.all else app.memories.forget(args.id))
        return 0 if ok else 1
    if args.command == "conversations":
        return _list_conversations(app)
    if args.command == "clear":
        return 0 if await app.conversations.delete_all() else 1
    return 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hearth", description="Private on-device assistant")
    sub = parser.add_subparsers(dest="command", required=True)

    chat = sub.add_parser("chat", help="Chat in the terminal")
    chat.add_argument("--conversation", help="Resume the conversation with this id")

    remember = sub.add_parser("remember", help="Save a memory")
    remember.add_argument("text", nargs="+")

    sub.add_parser("memories", help="List saved memories")

    forget = sub.add_parser("forget", help="Delete a memory")
    group = forget.add_mutually_exclusive_group(required=True)
    group.add_argument("id", nargs="?")
    group.add_argument("--all", action="store_true", help="Delete every memory")

    sub.add_parser("conversations", help="List conversations")
    sub.add_parser("clear", help="Delete all conversations")
    return parser


def main(argv: list[str] | None = None) -> None:
    """Parse arguments and run the requested command."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )
    args = build_parser().parse_args(argv)
    sys.exit(asyncio.run(run(args, settings)))


if __name__ == "__main__":
    main()
