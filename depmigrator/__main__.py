from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from depmigrator.agent.loop import ConversationOrchestrator, LoopCallbacks
from depmigrator.agent.provider_router import build_provider
from depmigrator.agent.system_prompts import build_system_prompt
from depmigrator.agent.tool_registry import build_default_registry
from depmigrator.config import Settings, load_settings
from depmigrator.errors import OrchestratorError
from depmigrator.observability.logging import configure_logging
from depmigrator.sandbox.workspace import Sandbox

EXIT_COMMANDS = {"exit", "quit"}


def build_parser() -> argparse.ArgumentParser:
    # accepted before or after the subcommand
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--workspace",
        type=Path,
        default=argparse.SUPPRESS,
        help="sandbox root (default: DEPMIGRATOR_WORKSPACE_ROOT or cwd)",
    )
    common.add_argument(
        "--verbose",
        action="store_true",
        default=argparse.SUPPRESS,
        help="log every tool call and result to stderr",
    )

    parser = argparse.ArgumentParser(
        prog="depmigrator",
        description="Migrate a codebase from one dependency to another with a tool-using model.",
        parents=[common],
    )
    sub = parser.add_subparsers(dest="command")

    chat = sub.add_parser("chat", parents=[common], help="interactive migration session (default)")
    chat.add_argument("--provider", help="model provider, e.g. openai, azure, anthropic")
    chat.add_argument("--model", help="model name or deployment")
    chat.add_argument("--max-rounds", type=int, help="maximum model rounds per user message")

    serve = sub.add_parser("serve", parents=[common], help="serve the tool registry over HTTP")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)
    return parser


def apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    workspace = getattr(args, "workspace", None)
    if workspace is not None:
        root = workspace.resolve()
        if not root.is_dir():
            raise SystemExit(f"workspace does not exist: {root}")
        settings.workspace_root = root
    if getattr(args, "verbose", False):
        settings.verbose = True
    for attr, setting in (
        ("provider", "provider"),
        ("model", "model"),
        ("max_rounds", "max_tool_rounds"),
        ("host", "host"),
        ("port", "port"),
    ):
        value = getattr(args, attr, None)
        if value is not None:
            setattr(settings, setting, value)
    return settings


async def run_chat(settings: Settings) -> int:
    sandbox = Sandbox(settings.workspace_root)
    orchestrator = ConversationOrchestrator(
        provider=build_provider(settings.provider, settings.api_key, settings.base_url),
        model=settings.model,
        tools=build_default_registry(sandbox, settings),
        system_prompt=build_system_prompt(sandbox.get_root()),
        callbacks=LoopCallbacks(on_text_delta=lambda text: print(text, end="", flush=True)),
        max_rounds=settings.max_tool_rounds,
        model_turn_timeout=settings.model_turn_timeout_s,
        verbose=settings.verbose,
    )

    while True:
        try:
            line = await asyncio.to_thread(input, "Prompt: ")
        except EOFError:
            print()
            return 0
        if not line.strip():
            continue
        if line.strip().lower() in EXIT_COMMANDS:
            return 0

        try:
            outcome = await orchestrator.send(line)
        except OrchestratorError as exc:
            print(f"\nerror: {exc}", file=sys.stderr)
            return 1
        print()
        if outcome.stop_reason == "max_rounds":
            print(f"[stopped after {outcome.rounds} model rounds]", file=sys.stderr)


def run_serve(settings: Settings) -> int:
    import uvicorn

    from depmigrator.api.app import create_app

    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = apply_overrides(load_settings(), args)
    configure_logging(settings.verbose)

    if args.command == "serve":
        return run_serve(settings)
    try:
        return asyncio.run(run_chat(settings))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
