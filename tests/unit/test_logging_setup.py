import logging
from core.logging import parse_level_overrides, setup_logging


def test_parse_level_overrides():
    overrides = parse_level_overrides("ingestion.aggregator=debug, httpx=INFO,broken,bad=LOUD")

    assert overrides == {"ingestion.aggregator": logging.DEBUG, "httpx": logging.INFO}
    assert parse_level_overrides("") == {}


def test_setup_logging_applies_overrides():
    setup_logging(level="INFO", overrides="onboarding.orchestrator=DEBUG,httpx=ERROR")

    assert logging.getLogger("onboarding.orchestrator").level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.ERROR
    assert logging.getLogger("apscheduler").level == logging.WARNING
