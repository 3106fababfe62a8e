import pytest

from fakes import TARGET_URL
from param_miner.guesser.models import GuessTarget


@pytest.fixture
def target():
    return GuessTarget.create(TARGET_URL)
