"""Learned value network for the isolation evaluator.

The network maps a 7x7 board to the probability that the software agent
eventually wins:

- **Input**: one feature per cell, Empty=0 / Blocked=1 / Human=2 /
  Software=3, divided by 3
- **Backbone**: three fully connected stages (256, 128, 64) with ReLU and
  dropout between them
- **Output**: single sigmoid unit

L2 regularisation is applied through the optimiser's weight decay during
training. Checkpoints are plain ``state_dict`` files addressed by path, so
the model can be swapped without touching the rest of the service.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Sequence, Tuple

import numpy as np
import torch
import torch.nn as nn
from torch.utils.data import DataLoader, TensorDataset

from ..errors import EvaluatorUnavailableError, ModelLoadError, PersistenceError
from ..models import BOARD_SIZE, Cell, ModelInfo

logger = logging.getLogger(__name__)

# Architecture constants
INPUT_SIZE = BOARD_SIZE * BOARD_SIZE
HIDDEN_UNITS: Tuple[int, int, int] = (256, 128, 64)
DROPOUT_RATE = 0.3
L2_WEIGHT_DECAY = 0.01
MODEL_FILENAME = "value_net.pt"

CELL_ENCODING = {
    Cell.EMPTY: 0.0,
    Cell.BLOCKED: 1.0,
    Cell.HUMAN: 2.0,
    Cell.SOFTWARE: 3.0,
}

BoardLike = Sequence[Sequence[Cell]]


def encode_board(board: BoardLike) -> np.ndarray:
    """Flatten ``board`` into a normalised float32 feature vector."""
    if len(board) != BOARD_SIZE or any(len(row) != BOARD_SIZE for row in board):
        raise ValueError(f"Expected a {BOARD_SIZE}x{BOARD_SIZE} board")
    features = np.fromiter(
        (CELL_ENCODING[Cell(cell)] for row in board for cell in row),
        dtype=np.float32,
        count=INPUT_SIZE,
    )
    return features / 3.0


class IsolationValueNet(nn.Module):
    """Feed-forward value network."""

    def __init__(
        self,
        input_size: int = INPUT_SIZE,
        hidden_units: Sequence[int] = HIDDEN_UNITS,
        dropout: float = DROPOUT_RATE,
    ):
        super().__init__()
        h1, h2, h3 = hidden_units
        self.layers = nn.Sequential(
            nn.Linear(input_size, h1),
            nn.ReLU(),
            nn.Dropout(dropout),
            nn.Linear(h1, h2),
            nn.ReLU(),
            nn.Dropout(dropout),
            nn.Linear(h2, h3),
            nn.ReLU(),
            nn.Linear(h3, 1),
            nn.Sigmoid(),
        )

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        """
        Args:
            x: Input tensor of shape (batch_size, input_size)

        Returns:
            Win probability of shape (batch_size, 1)
        """
        return self.layers(x)


class NeuralEvaluator:
    """Owns the value network: creation, inference, training and checkpoints.

    Model access is serialised by a lock so training never overlaps an
    in-flight evaluation; an evaluation that waits too long on the lock is
    simply answered by the heuristic in :class:`FallbackEvaluator`.
    """

    def __init__(
        self,
        model_dir: Path,
        learning_rate: float = 0.001,
        batch_size: int = 32,
        device: str = "cpu",
    ):
        self.model_dir = Path(model_dir)
        self.learning_rate = learning_rate
        self.batch_size = batch_size
        self.device = torch.device(device)
        self.model: IsolationValueNet | None = None
        self._lock = threading.Lock()

    @property
    def model_file(self) -> Path:
        return self.model_dir / MODEL_FILENAME

    def initialize(self) -> None:
        """Load the saved model, or create and save a fresh one."""
        try:
            loaded = self.load_model()
        except ModelLoadError as e:
            logger.warning("Could not load saved model, starting fresh: %s", e)
            loaded = False

        if not loaded:
            logger.info("Creating new value network")
            self.create_model()
            try:
                self.save_model()
            except PersistenceError as e:
                logger.warning("Model works in memory but could not be saved: %s", e)

    def create_model(self) -> None:
        model = IsolationValueNet().to(self.device)
        model.eval()
        with self._lock:
            self.model = model
        logger.info(
            "Value network created (%d parameters)",
            sum(p.numel() for p in model.parameters()),
        )

    def reinitialize(self) -> ModelInfo:
        """Discard the current weights and persist a freshly initialised model."""
        self.create_model()
        try:
            self.save_model()
        except PersistenceError as e:
            logger.warning("Reinitialised model could not be saved: %s", e)
        return self.model_info()

    def is_loaded(self) -> bool:
        return self.model is not None

    def evaluate(self, board: BoardLike) -> float:
        """Return the software agent's win probability for ``board``."""
        model = self.model
        if model is None:
            raise EvaluatorUnavailableError("Value network not loaded")

        x = torch.from_numpy(encode_board(board)).unsqueeze(0).to(self.device)
        with self._lock, torch.inference_mode():
            value = model(x)
        return float(value.squeeze().item())

    def train(
        self,
        examples: Sequence[tuple[BoardLike, float]],
        epochs: int = 10,
        validation_split: float = 0.2,
    ) -> dict[str, list[float]]:
        """Fit the network on ``(board, software_win_probability)`` pairs.

        Returns per-epoch training loss and, when a validation split is
        carved out, validation loss.
        """
        if self.model is None:
            raise EvaluatorUnavailableError("Value network not loaded")

        history: dict[str, list[float]] = {"loss": [], "val_loss": []}
        if not examples:
            logger.info("No training data provided")
            return history

        inputs = torch.from_numpy(np.stack([encode_board(board) for board, _ in examples]))
        labels = torch.tensor(
            [min(1.0, max(0.0, float(label))) for _, label in examples],
            dtype=torch.float32,
        ).unsqueeze(1)

        n_val = int(len(examples) * validation_split)
        order = torch.randperm(len(examples))
        val_idx, train_idx = order[:n_val], order[n_val:]
        if len(train_idx) == 0:
            train_idx, val_idx = order, order[:0]

        loader = DataLoader(
            TensorDataset(inputs[train_idx], labels[train_idx]),
            batch_size=self.batch_size,
            shuffle=True,
        )
        criterion = nn.BCELoss()
        logger.info(f"Training value network on {len(train_idx)} examples")

        with self._lock:
            model = self.model
            optimizer = torch.optim.Adam(
                model.parameters(),
                lr=self.learning_rate,
                weight_decay=L2_WEIGHT_DECAY,
            )
            try:
                for _ in range(epochs):
                    model.train()
                    total, count = 0.0, 0
                    for batch_x, batch_y in loader:
                        batch_x = batch_x.to(self.device)
                        batch_y = batch_y.to(self.device)
                        optimizer.zero_grad()
                        loss = criterion(model(batch_x), batch_y)
                        loss.backward()
                        optimizer.step()
                        total += loss.item() * len(batch_x)
                        count += len(batch_x)
                    history["loss"].append(total / max(count, 1))

                    if len(val_idx) > 0:
                        model.eval()
                        with torch.inference_mode():
                            val_pred = model(inputs[val_idx].to(self.device))
                            val_loss = criterion(val_pred, labels[val_idx].to(self.device))
                        history["val_loss"].append(val_loss.item())
            finally:
                model.eval()

        logger.info(f"Training completed, final loss {history['loss'][-1]:.4f}")
        return history

    def save_model(self, path: Path | None = None) -> Path:
        """Write the current weights to ``path`` (default: ``model_file``)."""
        if self.model is None:
            raise EvaluatorUnavailableError("No model to save")

        target = Path(path) if path is not None else self.model_file
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with self._lock:
                torch.save(
                    {
                        "model_state_dict": self.model.state_dict(),
                        "hidden_units": list(HIDDEN_UNITS),
                    },
                    target,
                )
        except (OSError, RuntimeError) as e:
            raise PersistenceError(f"Failed to save model: {e}", path=str(target)) from e

        logger.info(f"Model saved to {target}")
        return target

    def load_model(self, path: Path | None = None) -> bool:
        """Load weights from ``path`` (default: ``model_file``).

        Returns False when no checkpoint exists; raises
        :class:`ModelLoadError` when one exists but cannot be used.
        """
        source = Path(path) if path is not None else self.model_file
        if not source.exists():
            logger.info(f"No existing model found at {source}")
            return False

        try:
            checkpoint = torch.load(source, map_location=self.device, weights_only=True)
            if isinstance(checkpoint, dict) and "model_state_dict" in checkpoint:
                state_dict = checkpoint["model_state_dict"]
            else:
                state_dict = checkpoint
            model = IsolationValueNet().to(self.device)
            model.load_state_dict(state_dict)
        except RuntimeError as e:
            raise ModelLoadError(
                f"Architecture mismatch loading checkpoint: {e}",
                model_path=str(source),
            ) from e
        except Exception as e:
            raise ModelLoadError(f"Failed to load model: {e}", model_path=str(source)) from e

        model.eval()
        with self._lock:
            self.model = model
        logger.info(f"Model loaded from {source}")
        return True

    def model_info(self) -> ModelInfo:
        model = self.model
        if model is None:
            return ModelInfo(loaded=False)
        return ModelInfo(
            loaded=True,
            total_params=sum(p.numel() for p in model.parameters()),
            layers=len(model.layers),
        )
