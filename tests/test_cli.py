"""CLI parser and entrypoint tests."""

from __future__ import annotations

import logging
from typing import Iterator

import pytest

from sitegen.cli import _build_parser, main
from tests._fixtures.site_builder import SiteBuilder


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    yield
    logger = logging.getLogger("sitegen")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


def test_cli_accepts_verbose_before_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["--verbose", "build"])
    assert args.verbose is True
    assert args.command == "build"
    assert args.path == "."


def test_cli_accepts_verbose_after_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["watch", "site", "--verbose"])
    assert args.verbose is True
    assert args.command == "watch"
    assert args.path == "site"


def test_cli_accepts_strict_flag() -> None:
    parser = _build_parser()
    args = parser.parse_args(["build", "--strict"])
    assert args.strict is True


def test_cli_serve_options() -> None:
    parser = _build_parser()
    args = parser.parse_args(["serve", "--host", "0.0.0.0", "--port", "9000"])
    assert args.host == "0.0.0.0"
    assert args.port == 9000


def test_build_command_writes_site(site_builder: SiteBuilder, capsys: pytest.CaptureFixture[str]) -> None:
    site_builder.with_templates()
    site_builder.write({"content/index.md": "# Home\n"})

    main(["build", str(site_builder.path())])

    out = capsys.readouterr().out
    assert "Built 1 page(s)" in out
    assert "Home" in site_builder.output("index.html")


def test_build_command_exits_non_zero_in_strict_mode(site_builder: SiteBuilder) -> None:
    site_builder.write(
        {
            "templates/page.html": "{% if %}",
            "content/index.md": "# Home\n",
        }
    )

    with pytest.raises(SystemExit) as excinfo:
        main(["build", str(site_builder.path()), "--strict"])

    assert excinfo.value.code == 1


def test_build_command_reports_config_errors(site_builder: SiteBuilder) -> None:
    site_builder.write({"sitegen.yml": "build: [broken\n"})

    with pytest.raises(SystemExit) as excinfo:
        main(["build", str(site_builder.path())])

    assert excinfo.value.code == 1


def test_cli_collects_debug_modules() -> None:
    parser = _build_parser()
    args = parser.parse_args(["--debug", "watch", "--debug", "plugins", "watch"])
    assert args.debug == ["watch", "plugins"]
