from typing import Callable, Sequence, Tuple

import pytest

from baton.config import Config
from baton.engine.run_loop import Runner
from scripted_provider import ScriptedProvider, ScriptStep


@pytest.fixture
def config() -> Config:
    """Configuration isolated from the developer environment."""
    return Config(model_name="test-model", max_turns=10, guardrail_max_retries=2)


@pytest.fixture
def make_runner(config: Config) -> Callable[[Sequence[ScriptStep]], Tuple[Runner, ScriptedProvider]]:
    """Build a runner over a scripted provider."""

    def _make(steps: Sequence[ScriptStep]) -> Tuple[Runner, ScriptedProvider]:
        provider = ScriptedProvider(steps)
        return Runner(provider=provider, config=config), provider

    return _make
