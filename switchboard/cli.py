#!/usr/bin/env python3
"""
switchboard CLI — patch the caller through.

Every command has an operator name and a standard alias:

    OPERATOR        STANDARD        WHAT IT DOES
    --------        --------        ----------------------------------
    dial            serve, start    Start the HTTP server
    ring            chat            Chat with the engine from the terminal
    tap             log, tail       Show recent wiretap entries
    flash           info, config    Show the effective configuration
"""

import argparse
import asyncio
import sys
from uuid import uuid4

__version__ = "0.1.0"

BANNER = r"""
    ╔══════════════════════════════════════════════╗
    ║   s w i t c h b o a r d                      ║
    ║   Patch the caller through.       v""" + __version__ + r"""    ║
    ╚══════════════════════════════════════════════╝
"""


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_dial(args):
    """Start the HTTP server."""
    import uvicorn
    from switchboard.config import get_config

    cfg = get_config()
    server_cfg = cfg.get("server", {}) or {}
    host = args.host or server_cfg.get("host", "127.0.0.1")
    port = args.port or server_cfg.get("port", 8000)

    print(BANNER)
    print(f"  Dialing up on {host}:{port}")
    print(f"  Provider: {(cfg.get('provider') or {}).get('type', 'mock')}")
    print(f"  Model: {(cfg.get('chat') or {}).get('model', 'gpt-4o')}")
    print()

    uvicorn.run(
        "switchboard.main:app",
        host=host,
        port=port,
        reload=args.reload,
        log_level="info",
    )


async def _ring(args):
    from switchboard.config import load_config
    from switchboard.engine import ChatEngine
    from switchboard.errors import SwitchboardError
    from switchboard.models import ChatRequest

    engine = ChatEngine.from_config(load_config(args.config) if args.config else None)
    conversation_id = args.conversation or uuid4().hex
    await engine.init()

    print(f"  ☎  Connected to {engine.provider.name} ({engine.config.model}). Ctrl+D to hang up.\n")
    try:
        while True:
            try:
                line = input("you> ")
            except EOFError:
                break
            if not line.strip():
                continue

            request = ChatRequest(message=line, conversation_id=conversation_id, stream=True)
            print("bot> ", end="", flush=True)
            try:
                async for chunk in engine.stream(request):
                    if chunk.type == "token":
                        print(chunk.data, end="", flush=True)
                    elif chunk.type == "error":
                        print(f"[error: {chunk.data}]", end="")
            except SwitchboardError as e:
                print(f"[error: {e}]", end="")
            print()
    finally:
        await engine.destroy()
        print("\n  [line disconnected]")


def cmd_ring(args):
    """Interactive chat against an in-process engine."""
    try:
        asyncio.run(_ring(args))
    except KeyboardInterrupt:
        pass


def cmd_tap(args):
    """Print recent wiretap entries."""
    from switchboard.config import get_config
    from switchboard.wiretap import format_entry, read_wire

    log_path = args.log or (get_config().get("wiretap", {}) or {}).get("path", "./data/wire.jsonl")
    entries = read_wire(log_path, last_n=args.last, role=args.role)
    if not entries:
        print(f"  ✗  No wire entries at {log_path}")
        return

    for entry in entries:
        print(format_entry(entry, raw=args.raw))


def cmd_flash(args):
    """Show the effective configuration at a glance."""
    from switchboard.config import ChatConfig, get_config

    cfg = get_config()
    chat = ChatConfig.from_dict(cfg)
    provider = cfg.get("provider", {}) or {}
    mw = cfg.get("middleware", {}) or {}

    print(BANNER)
    print("  Chat")
    print(f"  ├─ Model:        {chat.model}")
    print(f"  ├─ Temperature:  {chat.temperature}")
    print(f"  ├─ Max tokens:   {chat.max_tokens}")
    print(f"  └─ Serialized:   {chat.serialize_turns}")
    print()
    print("  Provider")
    print(f"  ├─ Type:         {provider.get('type', 'mock')}")
    print(f"  └─ Base URL:     {provider.get('base_url', '-')}")
    print()
    print("  Memory")
    print(f"  ├─ Strategy:     {chat.memory.type}")
    print(f"  ├─ Window:       {chat.memory.window_size}")
    print(f"  └─ Max tokens:   {chat.memory.max_tokens}")
    print()
    print("  Middleware")
    rl = chat.rate_limit
    print(f"  ├─ Rate limit:   {f'{rl.max_requests} per {rl.window_ms}ms' if rl else 'off'}")
    print(f"  ├─ Filter:       {'on' if (mw.get('content_filter') or {}).get('enabled') else 'off'}")
    print(f"  └─ Logger:       {'on' if (mw.get('logger') or {}).get('enabled') else 'off'}")


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _add_command(subparsers, names, help_text, func, setup_fn=None):
    """Register a command under multiple names (operator + standard)."""
    p = subparsers.add_parser(names[0], help=help_text, aliases=names[1:])
    p.set_defaults(func=func)
    if setup_fn:
        setup_fn(p)
    return p


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="switchboard",
        description="switchboard — conversational AI orchestration.",
        epilog="Run 'switchboard <command> --help' for command-specific options.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version", "-V", action="version",
        version=f"switchboard {__version__}",
    )

    sub = parser.add_subparsers(dest="command", metavar="<command>")

    def setup_dial(p):
        p.add_argument("--host", default=None, help="Override listen host")
        p.add_argument("--port", "-p", type=int, default=None, help="Override listen port")
        p.add_argument("--reload", action="store_true", help="Auto-reload on code changes (dev)")

    _add_command(sub, ["dial", "serve", "start"], "Start the HTTP server", cmd_dial, setup_dial)

    def setup_ring(p):
        p.add_argument("--config", "-c", default=None, help="Path to a config.yaml")
        p.add_argument("--conversation", default=None, help="Resume a conversation id")

    _add_command(sub, ["ring", "chat"], "Chat with the engine from the terminal", cmd_ring, setup_ring)

    def setup_tap(p):
        p.add_argument("--log", default=None, help="Path to wire.jsonl (default: from config)")
        p.add_argument("--last", "-n", type=int, default=20, help="Show last N entries")
        p.add_argument("--role", "-r", choices=["user", "assistant", "tool"], default=None, help="Filter by role")
        p.add_argument("--raw", action="store_true", help="Print raw JSONL lines")

    _add_command(sub, ["tap", "log", "tail"], "Show recent wiretap entries", cmd_tap, setup_tap)

    _add_command(sub, ["flash", "info", "config"], "Show the effective configuration", cmd_flash)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        print(BANNER)
        parser.print_help()
        return 0

    args.func(args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
