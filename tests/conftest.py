"""
Shared pytest fixtures for isolation service tests.

Everything that touches the filesystem is rooted in ``tmp_path`` and the
learned model is disabled, so tests are deterministic and independent.
Stub evaluators and board builders live in ``tests/helpers.py``.
"""

import random
from pathlib import Path
from typing import Callable

import pytest

from isolation.ai.evaluation_provider import HeuristicEvaluator
from isolation.ai.one_ply_ai import OnePlyAI
from isolation.config import ServiceConfig
from isolation.experience import ExperienceRecorder
from isolation.game_engine import GameEngine
from isolation.models import AIConfig, Agent
from isolation.session_store import SessionStore


@pytest.fixture
def service_config(tmp_path: Path) -> ServiceConfig:
    return ServiceConfig(
        search_time_ms=100,
        search_max_evaluations=40,
        model_path=tmp_path / "models",
        data_dir=tmp_path / "data",
        pattern_flush_probability=0.0,
        load_model=False,
    )


@pytest.fixture
def fast_ai_config() -> AIConfig:
    return AIConfig(think_time=100, max_evaluations=40)


@pytest.fixture
def recorder(service_config: ServiceConfig) -> ExperienceRecorder:
    return ExperienceRecorder(
        service_config.games_dir,
        service_config.patterns_path,
        flush_probability=0.0,
        rng=random.Random(0),
    )


@pytest.fixture
def make_engine(
    service_config: ServiceConfig,
    recorder: ExperienceRecorder,
    fast_ai_config: AIConfig,
) -> Callable[..., GameEngine]:
    """Factory for engines sharing the test's recorder and data dir."""

    def _make(evaluator=None, selector=None, hint_selector=None) -> GameEngine:
        evaluator = evaluator or HeuristicEvaluator()
        return GameEngine(
            SessionStore(),
            selector or OnePlyAI(Agent.SOFTWARE, fast_ai_config, evaluator),
            recorder=recorder,
            stats_path=service_config.stats_path,
            hint_selector=hint_selector or OnePlyAI(Agent.HUMAN, fast_ai_config, evaluator),
            rng=random.Random(0),
        )

    return _make


@pytest.fixture
def engine(make_engine) -> GameEngine:
    return make_engine()
