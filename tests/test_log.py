import json
import logging

import pytest
import structlog

from infragraph import Settings
from infragraph.log import configure_logging


@pytest.fixture(autouse=True)
def reset_logging():
    level = logging.root.level
    yield

    structlog.reset_defaults()
    logging.root.setLevel(level)
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)


def test_json_logging(capsys):
    configure_logging(Settings(log_format="json"))

    structlog.get_logger("infragraph").info("plan_created", plan="p-1")

    record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
    assert record["event"] == "plan_created"
    assert record["plan"] == "p-1"
    assert record["level"] == "info"


def test_log_level(capsys):
    configure_logging(Settings(log_level="WARNING"))
    logger = structlog.get_logger("infragraph")

    logger.info("step_succeeded", node="vault")
    logger.warning("apply_cancelled")

    err = capsys.readouterr().err
    assert "step_succeeded" not in err
    assert "apply_cancelled" in err
