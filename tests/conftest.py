import pytest

from uchain import reset_config


@pytest.fixture(autouse=True)
def _default_config():
    reset_config()
    yield
    reset_config()
