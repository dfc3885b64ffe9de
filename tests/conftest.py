import logging

import pytest


@pytest.fixture(autouse=True)
def _reset_atrium_logger():
    """Undo CLI logging setup so caplog sees records from every test."""
    yield
    logger = logging.getLogger("atrium")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
