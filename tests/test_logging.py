from __future__ import annotations

import logging
from io import StringIO

from keel.core import logging as keel_logging
from keel.core.logging import LabeledFormatter, setup_logging


def test_setup_logging_is_idempotent():
    keel_logging.reset_logging()
    first = setup_logging("DEBUG")
    second = setup_logging("ERROR")

    assert first is second
    assert first.name == "keel"
    assert len(first.handlers) == 1
    assert first.level == logging.DEBUG


def test_labeled_prefixes():
    out = StringIO()
    logger = logging.getLogger("keel_test_labels")
    logger.setLevel(logging.INFO)
    for h in logger.handlers[:]:
        logger.removeHandler(h)
    handler = logging.StreamHandler(out)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    logger.info("preview cadets")
    logger.warning("row 2 failed")
    logger.error("boom")

    assert out.getvalue().splitlines() == [
        "INFO [keel_test_labels] preview cadets",
        "WARN [keel_test_labels] row 2 failed",
        "ERROR [keel_test_labels] boom",
    ]
