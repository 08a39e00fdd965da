import logging

import pytest

from propstore import reset_store


@pytest.fixture(autouse=True)
def fresh_engine():
    """Every test gets its own default engine and a quiet logger."""
    reset_store()
    yield
    reset_store()
    logging.getLogger("propstore").setLevel(logging.NOTSET)
