"""CLI entrypoints for sitegen commands."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from .config import load_config
from .errors import BuildFailedError, SiteGenError
from .logging import configure_logging
from .orchestrator import BuildOrchestrator
from .watcher import watch


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_site_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the site root or its sitegen.yml (defaults to current directory).",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail the build when any page, asset or hook reports an error.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sitegen",
        description="Build multilingual documentation sites from markdown content.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write logs to this file.",
    )
    parser.add_argument(
        "--debug",
        action="append",
        default=[],
        metavar="MODULE",
        help="Log MODULE (e.g. watch, plugins, orchestrator) at debug level; repeatable.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Run a full build of the site.")
    _add_verbose_option(build_parser, suppress_default=True)
    _add_site_options(build_parser)

    watch_parser = subparsers.add_parser(
        "watch",
        help="Build the site, then rebuild incrementally as files change.",
    )
    _add_verbose_option(watch_parser, suppress_default=True)
    _add_site_options(watch_parser)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Expose build operations over HTTP.",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    _add_site_options(serve_parser)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def _make_orchestrator(path: str, strict: bool) -> BuildOrchestrator:
    config = load_config(Path(path))
    return BuildOrchestrator(config, strict=True if strict else None)


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for sitegen commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        verbose=bool(args.verbose), log_file=args.log_file, debug_modules=args.debug
    )

    try:
        orchestrator = _make_orchestrator(args.path, bool(args.strict))
    except SiteGenError as exc:
        parser.exit(1, f"sitegen: {exc}\n")

    if args.command == "build":
        try:
            report = asyncio.run(orchestrator.build())
        except BuildFailedError as exc:
            parser.exit(1, f"sitegen build failed: {exc}\n")
        except SiteGenError as exc:
            parser.exit(1, f"sitegen build failed: {exc}\nRun with --verbose for more details.\n")
        output = _relativize(orchestrator.config.output_root)
        message = f"Built {len(report.pages)} page(s) into {output}"
        if report.errors:
            message += f" with {len(report.errors)} error(s)"
        print(message)
    elif args.command == "watch":
        try:
            asyncio.run(watch(orchestrator))
        except KeyboardInterrupt:
            print("Stopped watching")
    elif args.command == "serve":
        from .service.app import run_service

        run_service(orchestrator, host=args.host, port=args.port)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
