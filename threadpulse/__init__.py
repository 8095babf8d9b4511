"""ThreadPulse Daily: deterministic daily word puzzle engine."""

from threadpulse.clues import CommunityClue, ValidationResult, rank_clues, validate_clue
from threadpulse.daily_engine import DailyEngine, GameStatus
from threadpulse.daily_seed import DailySelection, compute_day_selection, day_seed, mulberry32, to_utc_day_key
from threadpulse.guess import GuessEvaluation, evaluate_guess, normalize_text
from threadpulse.puzzles import EmptyBankError, Puzzle, PuzzleBankError, load_puzzle_bank
from threadpulse.scoring import compute_score

__all__ = [
    "CommunityClue",
    "DailyEngine",
    "DailySelection",
    "EmptyBankError",
    "GameStatus",
    "GuessEvaluation",
    "Puzzle",
    "PuzzleBankError",
    "ValidationResult",
    "compute_day_selection",
    "compute_score",
    "day_seed",
    "evaluate_guess",
    "load_puzzle_bank",
    "mulberry32",
    "normalize_text",
    "rank_clues",
    "to_utc_day_key",
    "validate_clue",
]
