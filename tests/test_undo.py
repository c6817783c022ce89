"""Undo round-trip tests for the session lifecycle manager."""

import unittest
import random

from isolation.ai.evaluation_provider import HeuristicEvaluator
from isolation.ai.one_ply_ai import OnePlyAI
from isolation.errors import InvalidStateError
from isolation.game_engine import GameEngine
from isolation.models import AIConfig, Agent, Cell, GamePhase
from isolation.session import new_board
from isolation.session_store import SessionStore

from tests.helpers import arrange, pos


def _observable(session):
    """The parts of a session an undo must restore exactly."""
    return (
        [row[:] for row in session.board],
        session.human_pos,
        session.software_pos,
        session.phase,
        session.current_player,
        len(session.move_history),
    )


class TestUndo(unittest.TestCase):
    def setUp(self):
        config = AIConfig(think_time=50, max_evaluations=20)
        self.engine = GameEngine(
            SessionStore(),
            OnePlyAI(Agent.SOFTWARE, config, HeuristicEvaluator()),
            rng=random.Random(3),
        )
        self.session = self.engine.create_session("tester")

    def test_undo_with_no_history_is_invalid(self):
        with self.assertRaises(InvalidStateError):
            self.engine.undo(self.session.id)

    def test_undo_human_move_restores_pre_move_state(self):
        self.engine.place_start(self.session.id, pos(0, 0))
        before = _observable(self.session)

        self.engine.apply_human_move(self.session.id, pos(1, 1))
        self.engine.undo(self.session.id)

        self.assertEqual(_observable(self.session), before)

    def test_human_then_software_then_undo_returns_to_placement(self):
        self.engine.place_start(self.session.id, pos(0, 0))
        after_placement = _observable(self.session)

        self.engine.apply_human_move(self.session.id, pos(1, 1))
        self.engine.apply_software_move(self.session.id)
        self.assertEqual(len(self.session.move_history), 3)

        self.engine.undo(self.session.id)

        self.assertEqual(_observable(self.session), after_placement)
        self.assertEqual(self.session.phase, GamePhase.PLAYING)
        self.assertEqual(self.session.current_player, Agent.HUMAN)
        self.assertEqual(self.session.board[0][0], Cell.HUMAN)
        self.assertEqual(self.session.board[3][3], Cell.SOFTWARE)

    def test_repeated_undo_unwinds_one_exchange_at_a_time(self):
        self.engine.place_start(self.session.id, pos(0, 0))
        self.engine.apply_human_move(self.session.id, pos(1, 1))
        self.engine.apply_software_move(self.session.id)
        after_first_exchange = _observable(self.session)
        self.engine.apply_human_move(
            self.session.id,
            self.engine.get_valid_moves(self.session.id)[0],
        )
        self.engine.apply_software_move(self.session.id)

        self.engine.undo(self.session.id)
        self.assertEqual(_observable(self.session), after_first_exchange)

    def test_undo_of_placement_resets_to_starting(self):
        self.engine.place_start(self.session.id, pos(2, 4))
        self.engine.undo(self.session.id)

        self.assertEqual(self.session.phase, GamePhase.STARTING)
        self.assertEqual(self.session.board, new_board())
        self.assertIsNone(self.session.human_pos)
        self.assertIsNone(self.session.software_pos)
        self.assertEqual(self.session.move_history, [])
        self.assertEqual(self.session.current_player, Agent.HUMAN)

        # The session can be started again
        self.engine.place_start(self.session.id, pos(0, 0))
        self.assertEqual(self.session.phase, GamePhase.PLAYING)

    def test_undo_in_ended_game_is_invalid(self):
        arrange(self.session, human=pos(2, 2), software=pos(0, 0), blocked=[pos(0, 1), pos(1, 0)])
        self.engine.apply_human_move(self.session.id, pos(1, 1))
        self.assertEqual(self.session.phase, GamePhase.ENDED)
        before = _observable(self.session)

        with self.assertRaises(InvalidStateError):
            self.engine.undo(self.session.id)
        self.assertEqual(_observable(self.session), before)

    def test_undo_after_undo_keeps_history_consistent(self):
        self.engine.place_start(self.session.id, pos(0, 0))
        self.engine.apply_human_move(self.session.id, pos(1, 1))
        self.engine.undo(self.session.id)
        self.engine.apply_human_move(self.session.id, pos(0, 1))

        self.assertEqual(self.session.board[0][0], Cell.BLOCKED)
        self.assertEqual(self.session.board[1][1], Cell.EMPTY)
        self.assertEqual(self.session.move_history[-1].from_pos, pos(0, 0))


if __name__ == "__main__":
    unittest.main()
