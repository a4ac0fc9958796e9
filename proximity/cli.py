"""Command line interface for Proximity."""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from proximity.app import Application
from proximity.config import get_config

CHAT_HELP = """Commands
/models          List available models
/model NAME      Switch to a model (starts a new session)
/prefs           Refresh and show preferences
/help            Show this help
/quit            Exit
"""


def _print(obj: Any) -> None:
    print(json.dumps(obj, indent=2))


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _print_notice(event: dict) -> None:
    kind = event.get("type")
    if kind in ("warning", "error", "info"):
        print(f"[{kind}] {event.get('message', '')}", file=sys.stderr)
    elif kind == "banner":
        if event.get("visible"):
            print(f"[offline] {event.get('message', '')}", file=sys.stderr)
        else:
            print("[online] Encryption service reachable again", file=sys.stderr)


async def _models(application: Application) -> None:
    models = await application.refresh_models()
    _print({"models": list(models)})


async def _prefs(application: Application) -> None:
    if application.defaults_path is not None:
        application.preferences.load_defaults(application.defaults_path)
    await application.refresh_preferences()
    _print({
        "platform": application.platform,
        "preferences": application.preferences.filtered(application.platform),
    })


async def _health(application: Application) -> int:
    online = await application.connectivity.probe()
    _print({"online": online, "last_checked": application.connectivity.state.last_checked})
    return 0 if online else 1


async def _ask(prompt: str) -> str:
    return await asyncio.to_thread(input, prompt)


async def _resolve_pending(application: Application) -> None:
    command = application.gate.pending
    if command is None:
        return
    print("Run this command? This will modify your system settings.")
    print(f"    {command}")
    answer = (await _ask("Execute? (y/N): ")).strip().lower()
    if answer != "y":
        application.cancel()
        print("Cancelled.")
        return
    outcome = await application.confirm()
    if outcome is not None and outcome.ok:
        print("Done.")


async def _chat(application: Application, model: str | None) -> None:
    application.subscribe(_print_notice)
    await application.on_start()
    models = application.catalog.models
    if model:
        application.select_model(model)
    elif len(models) == 1:
        application.select_model(models[0])
    application.signal_ready()
    print(CHAT_HELP)
    if application.sessions.model_id:
        print(f"Using model {application.sessions.model_id}")

    while True:
        try:
            line = (await _ask("> ")).strip()
        except EOFError:
            break
        if not line:
            continue
        if line in ("/quit", "/exit"):
            break
        if line == "/help":
            print(CHAT_HELP)
        elif line == "/models":
            models = await application.refresh_models()
            print("\n".join(models) if models else "No models available")
        elif line.startswith("/model "):
            application.select_model(line.split(" ", 1)[1].strip())
            print(f"Switched to {application.sessions.model_id}")
        elif line == "/prefs":
            await application.on_demand()
            _print(application.preferences.filtered(application.platform))
        else:
            outcome = await application.submit(line)
            if outcome.status == "completed":
                print(application.sessions.messages[-1].text)
                await _resolve_pending(application)


def cmd_models(args: argparse.Namespace) -> int:
    asyncio.run(_models(Application.from_config(get_config())))
    return 0


def cmd_prefs(args: argparse.Namespace) -> int:
    asyncio.run(_prefs(Application.from_config(get_config())))
    return 0


def cmd_health(args: argparse.Namespace) -> int:
    return asyncio.run(_health(Application.from_config(get_config())))


def cmd_chat(args: argparse.Namespace) -> int:
    config = get_config()
    if args.apply_saved:
        config.raw.setdefault("startup", {})["apply_preferences"] = True
    try:
        asyncio.run(_chat(Application.from_config(config), args.model))
    except KeyboardInterrupt:
        pass
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    from proximity.server import main as serve_main
    serve_main()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="proximity", description="Accessibility preferences assistant")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("models", help="List available local models")
    sub.add_parser("prefs", help="Show the preference snapshot for this platform")
    sub.add_parser("health", help="Probe the encryption service")

    chat = sub.add_parser("chat", help="Start an interactive session")
    chat.add_argument("--model", help="Model to select on start")
    chat.add_argument("--apply-saved", action="store_true", help="Re-apply saved preferences on start")

    sub.add_parser("serve", help="Run the HTTP API")
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    if args.command == "models":
        return cmd_models(args)
    elif args.command == "prefs":
        return cmd_prefs(args)
    elif args.command == "health":
        return cmd_health(args)
    elif args.command == "chat":
        return cmd_chat(args)
    elif args.command == "serve":
        return cmd_serve(args)
    parser.print_help()
    return 2


if __name__ == "__main__":
    sys.exit(main())
