import logging

import pytest

from stackorder.core.logging import ROOT_LOGGER


@pytest.fixture(autouse=True)
def _reset_stackorder_logging():
    # CLI runs bind a handler to the runner's captured stderr.
    yield
    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.setLevel(logging.NOTSET)
