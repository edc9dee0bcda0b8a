# pyright: standard
from collections.abc import Callable
from itertools import count

import pytest

from convo.conversation import create_conversation
from convo.environment import Environment, make_environment
from convo.models import Conversation


def counter_ids(prefix: str = "id") -> Callable[[], str]:
    counter = count(1)
    return lambda: f"{prefix}-{next(counter)}"


def counter_clock() -> Callable[[], str]:
    counter = count(0)
    return lambda: f"2024-01-01T00:00:{next(counter):02d}+00:00"


@pytest.fixture
def env() -> Environment:
    """Deterministic environment: ids id-1, id-2, ... and a clock ticking one second per call."""
    return make_environment(now=counter_clock(), random_id=counter_ids())


@pytest.fixture
def empty(env: Environment) -> Conversation:
    return create_conversation(title="test", environment=env)
