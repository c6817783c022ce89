"""Service configuration read once from the environment at startup.

Each component receives the :class:`ServiceConfig` it needs explicitly;
nothing reads the environment after :meth:`ServiceConfig.from_env` returns.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _is_truthy_env(name: str) -> bool | None:
    val = os.environ.get(name, "").strip().lower()
    if not val:
        return None
    if val in {"1", "true", "yes", "on"}:
        return True
    if val in {"0", "false", "no", "off"}:
        return False
    return None


def _parse_positive_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        parsed = int(raw)
        return parsed if parsed > 0 else default
    except ValueError:
        return default


def _parse_positive_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        parsed = float(raw)
        return parsed if parsed > 0 else default
    except ValueError:
        return default


def _parse_probability(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        parsed = float(raw)
    except ValueError:
        return default
    return parsed if 0.0 <= parsed <= 1.0 else default


@dataclass(frozen=True)
class ServiceConfig:
    """Tunable parameters for the isolation service."""

    search_time_ms: int = 500
    search_max_evaluations: int = 200
    eval_timeout_ms: int = 50
    learning_rate: float = 0.001
    training_batch_size: int = 32
    model_path: Path = Path("data/models")
    data_dir: Path = Path("data")
    session_ttl_sec: int = 3600
    sweep_interval_sec: int = 300
    pattern_flush_probability: float = 0.1
    experience_capacity: int = 10_000
    load_model: bool = True
    cors_origins: tuple[str, ...] = field(default=("*",))

    @property
    def stats_path(self) -> Path:
        return self.data_dir / "stats.json"

    @property
    def patterns_path(self) -> Path:
        return self.data_dir / "patterns" / "human_patterns.json"

    @property
    def games_dir(self) -> Path:
        return self.data_dir / "games"

    @classmethod
    def from_env(cls) -> ServiceConfig:
        defaults = cls()
        load_model = _is_truthy_env("ISOLATION_LOAD_MODEL")
        return cls(
            search_time_ms=_parse_positive_int("ISOLATION_SEARCH_TIME_MS", defaults.search_time_ms),
            search_max_evaluations=_parse_positive_int(
                "ISOLATION_SEARCH_MAX_EVALUATIONS", defaults.search_max_evaluations
            ),
            eval_timeout_ms=_parse_positive_int("ISOLATION_EVAL_TIMEOUT_MS", defaults.eval_timeout_ms),
            learning_rate=_parse_positive_float("ISOLATION_LEARNING_RATE", defaults.learning_rate),
            training_batch_size=_parse_positive_int(
                "ISOLATION_TRAINING_BATCH_SIZE", defaults.training_batch_size
            ),
            model_path=Path(os.environ.get("ISOLATION_MODEL_PATH") or defaults.model_path),
            data_dir=Path(os.environ.get("ISOLATION_DATA_DIR") or defaults.data_dir),
            session_ttl_sec=_parse_positive_int("ISOLATION_SESSION_TTL_SEC", defaults.session_ttl_sec),
            sweep_interval_sec=_parse_positive_int(
                "ISOLATION_SWEEP_INTERVAL_SEC", defaults.sweep_interval_sec
            ),
            pattern_flush_probability=_parse_probability(
                "ISOLATION_PATTERN_FLUSH_PROBABILITY", defaults.pattern_flush_probability
            ),
            experience_capacity=_parse_positive_int(
                "ISOLATION_EXPERIENCE_CAPACITY", defaults.experience_capacity
            ),
            load_model=defaults.load_model if load_model is None else load_model,
            cors_origins=tuple(
                o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
            ) or ("*",),
        )
