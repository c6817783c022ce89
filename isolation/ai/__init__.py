"""AI components for the isolation game.

    from isolation.ai import FallbackEvaluator, NeuralEvaluator, OnePlyAI

Architecture:
- base.py: BaseAI abstract base class
- one_ply_ai.py: bounded repeated one-ply evaluation (the software agent)
- evaluation_provider.py: evaluator protocol, heuristic, timeout fallback
- neural_net.py: learned value network (imports torch, lazy-loaded)
"""

from isolation.ai.base import BaseAI
from isolation.ai.evaluation_provider import (
    EvaluationProvider,
    FallbackEvaluator,
    HeuristicEvaluator,
)
from isolation.ai.one_ply_ai import OnePlyAI, SearchStats

# Lazy-load torch-backed classes so rules-only callers stay lightweight
_LAZY_CLASSES = {
    "IsolationValueNet": "isolation.ai.neural_net",
    "NeuralEvaluator": "isolation.ai.neural_net",
}


def __getattr__(name: str):
    """Lazy loading for torch-backed classes."""
    if name in _LAZY_CLASSES:
        import importlib
        module = importlib.import_module(_LAZY_CLASSES[name])
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "BaseAI",
    "EvaluationProvider",
    "FallbackEvaluator",
    "HeuristicEvaluator",
    "IsolationValueNet",
    "NeuralEvaluator",
    "OnePlyAI",
    "SearchStats",
]
