from __future__ import annotations

import argparse
import shutil
import sys
from pathlib import Path
from typing import Optional

import uvicorn
from rich.console import Console

from .core.config import get_settings
from .core.errors import ExternalToolFailure
from .media.keys import derive_key
from .media.probe import FFprobeProber
from .media.remux import FFmpegRemuxer
from .media.toolcheck import tool_available

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "check", False):
        _run_environment_check()
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args)


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI.

    Returns:
        The argument parser.
    """
    parser = argparse.ArgumentParser(description="Tubely media developer CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of ffmpeg/ffprobe dependencies")
    parser.add_argument("--timeout", type=float, default=None, help="Seconds before an ffmpeg/ffprobe run is abandoned")

    subparsers = parser.add_subparsers(dest="command")

    probe_parser = subparsers.add_parser("probe", help="Print the frame size and aspect ratio classification")
    probe_parser.add_argument("--file", required=True, help="Path to the source media file")
    probe_parser.set_defaults(func=_cmd_probe)

    remux_parser = subparsers.add_parser("remux", help="Rewrite an MP4 for fast start without re-encoding")
    remux_parser.add_argument("--file", required=True, help="Path to the source MP4")
    remux_parser.add_argument("--output", help="Destination path (defaults to <name>.faststart.mp4)")
    remux_parser.set_defaults(func=_cmd_remux)

    key_parser = subparsers.add_parser("key", help="Derive a random storage key")
    key_parser.add_argument("--prefix", default="", help="Key prefix, e.g. landscape")
    key_parser.add_argument("--extension", default=".mp4", help="File extension for the key")
    key_parser.set_defaults(func=_cmd_key)

    serve_parser = subparsers.add_parser("serve", help="Run the API with uvicorn")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8091)
    serve_parser.add_argument("--reload", action="store_true", help="Restart on code changes")
    serve_parser.set_defaults(func=_cmd_serve)
    return parser


def _cmd_probe(args: argparse.Namespace) -> None:
    """Run ffprobe and print the classification.

    Args:
        args: The command-line arguments.
    """
    media_path = _existing_file(args.file)
    try:
        result = FFprobeProber(get_settings().ffprobe_binary, timeout=_timeout(args)).probe(media_path)
    except ExternalToolFailure as exc:
        console.print(f"[red]ffprobe failed:[/] {exc.message} {exc.detail or ''}".rstrip())
        sys.exit(3)
    console.print_json(
        data={
            "file": str(media_path),
            "width": result.width,
            "height": result.height,
            "aspect_ratio": result.classification.value,
        }
    )


def _cmd_remux(args: argparse.Namespace) -> None:
    """Remux a file for fast start.

    Args:
        args: The command-line arguments.
    """
    media_path = _existing_file(args.file)
    try:
        produced = FFmpegRemuxer(get_settings().ffmpeg_binary, timeout=_timeout(args)).remux(media_path)
    except ExternalToolFailure as exc:
        console.print(f"[red]ffmpeg failed:[/] {exc.message} {exc.detail or ''}".rstrip())
        sys.exit(3)
    if args.output:
        target = Path(args.output).expanduser().resolve()
        shutil.move(str(produced), target)
        produced = target
    console.print(f"[green]Fast-start copy written to {produced}[/]")


def _cmd_key(args: argparse.Namespace) -> None:
    console.print(str(derive_key(args.prefix, extension=args.extension)), soft_wrap=True)


def _cmd_serve(args: argparse.Namespace) -> None:
    uvicorn.run("tubely.main:create_app", factory=True, host=args.host, port=args.port, reload=args.reload)


def _timeout(args: argparse.Namespace) -> float | None:
    if args.timeout is not None:
        return args.timeout or None
    return get_settings().tool_timeout


def _existing_file(raw: str) -> Path:
    media_path = Path(raw).expanduser().resolve()
    if not media_path.is_file():
        console.print(f"[red]File not found: {media_path}[/]")
        sys.exit(2)
    return media_path


def _run_environment_check() -> None:
    """Check for the presence of required external dependencies."""
    settings = get_settings()
    results = {
        "ffmpeg": tool_available(settings.ffmpeg_binary),
        "ffprobe": tool_available(settings.ffprobe_binary),
    }

    console.rule("[bold]Environment Check")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not all(results.values()):
        console.print("[red]Missing dependencies detected. Install ffmpeg (which ships ffprobe).[/]")
        sys.exit(1)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()
