"""Tests for the command-line entry point."""

import pytest

from hearth.config import Settings
from hearth.main import build_app, build_parser, run


@pytest.fixture
def config(tmp_path) -> Settings:
    return Settings(database_path=tmp_path / "hearth.db", models_dir=tmp_path / "models")


class TestParser:
    def test_chat_resume(self):
        args = build_parser().parse_args(["chat", "--conversation", "abc"])
        assert args.command == "chat"
        assert args.conversation == "abc"

    def test_remember_joins_words(self):
        args = build_parser().parse_args(["remember", "I", "like", "tea"])
        assert args.text == ["I", "like", "tea"]

    def test_forget_all(self):
        args = build_parser().parse_args(["forget", "--all"])
        assert args.all is True
        assert args.id is None

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


async def test_build_app_loads_state(config):
    app = await build_app(config)
    assert app.conversations.conversations == []
    assert app.memories.count == 0
    assert app.default_model_id == "llama-3.2-1b"
    assert config.database_path.exists()


async def test_remember_list_and_forget(config, capsys):
    parser = build_parser()
    assert await run(parser.parse_args(["remember", "I", "like", "tea"]), config) == 0

    assert await run(parser.parse_args(["memories"]), config) == 0
    out = capsys.readouterr().out
    assert "I like tea" in out
    item_id = out.split()[0]

    assert await run(parser.parse_args(["forget", item_id]), config) == 0
    assert await run(parser.parse_args(["forget", item_id]), config) == 1
    assert await run(parser.parse_args(["remember", "x"]), config) == 0
    assert await run(parser.parse_args(["forget", "--all"]), config) == 0

    app = await build_app(config)
    assert app.memories.count == 0


async def test_conversations_and_clear(config, capsys):
    app = await build_app(config)
    conversation = await app.conversations.create_conversation("openelm-1.1b")

    assert await run(build_parser().parse_args(["conversations"]), config) == 0
    out = capsys.readouterr().out
    assert conversation.id in out
    assert "OpenELM 1.1B" in out

    assert await run(build_parser().parse_args(["clear"]), config) == 0
    assert (await build_app(config)).conversations.conversations == []


async def test_chat_unknown_conversation(config):
    args = build_parser().parse_args(["chat", "--conversation", "0" * 32])
    assert await run(args, config) == 1
