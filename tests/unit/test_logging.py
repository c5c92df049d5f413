from __future__ import annotations

import logging

import pytest

from src.adcast.logging import configure_logging, resolve_level

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    ("level", "expected"),
    [("debug", logging.DEBUG), (" WARNING ", logging.WARNING), (logging.ERROR, logging.ERROR)],
)
def test_resolve_level_accepts_names_and_constants(level: int | str, expected: int) -> None:
    assert resolve_level(level) == expected


def test_resolve_level_rejects_unknown_names() -> None:
    with pytest.raises(ValueError, match="unknown log level"):
        resolve_level("chatty")


def test_configure_logging_accepts_configured_level_name() -> None:
    configure_logging("warning")
