"""Human-readable presentation of engine analysis."""

from __future__ import annotations

from concurrent import futures
from dataclasses import dataclass
from typing import List, Optional

import chess

from .analysis import AnalysisResult
from .session import EngineSession, board_from_fen
from .uci_parser import EvaluationScore

PIECE_NAMES = {
    chess.PAWN: "pawn",
    chess.KNIGHT: "knight",
    chess.BISHOP: "bishop",
    chess.ROOK: "rook",
    chess.QUEEN: "queen",
    chess.KING: "king",
}

GENERIC_EXPLANATIONS = {
    chess.PAWN: "Advances pawn",
    chess.KNIGHT: "Develops knight",
    chess.BISHOP: "Develops bishop",
    chess.ROOK: "Activates rook",
    chess.QUEEN: "Activates queen",
    chess.KING: "Moves king",
}

# (exclusive lower bound in centipawns, text), checked top-down
ASSESSMENT_BANDS = (
    (300, "White is winning"),
    (150, "White is much better"),
    (50, "White is slightly better"),
    (-50, "Equal position"),
    (-150, "Black is slightly better"),
    (-300, "Black is much better"),
)


@dataclass(frozen=True)
class PositionReport:
    best_move: Optional[str]
    evaluation: Optional[EvaluationScore]
    formatted_evaluation: str
    assessment: str
    depth: int


@dataclass(frozen=True)
class TopMove:
    rank: int
    move: str
    uci_move: str
    evaluation: EvaluationScore
    formatted_evaluation: str
    explanation: str


def format_evaluation(score: Optional[EvaluationScore]) -> str:
    if score is None:
        return "0.00"
    if score.is_mate:
        if score.value > 0:
            return f"Mate in {score.value}"
        return f"Mated in {abs(score.value)}"
    return f"{score.value / 100:+.2f}"


def position_assessment(score: Optional[EvaluationScore], white_to_move: bool = True) -> str:
    """Describe *score* (centipawns from White's side) in words.

    Mate distances are relative to the side to move, so the mover decides
    who has the forced mate.
    """
    if score is None:
        return "Equal position"
    if score.is_mate:
        mover, other = ("White", "Black") if white_to_move else ("Black", "White")
        winner = mover if score.value > 0 else other
        return f"{winner} has a forced mate"
    for bound, text in ASSESSMENT_BANDS:
        if score.value > bound:
            return text
    return "Black is winning"


def explain_move(board: chess.Board, uci: str) -> str:
    if not uci:
        return ""
    try:
        move = board.parse_uci(uci)
    except ValueError:
        return ""

    reasons = []
    if board.is_capture(move):
        if board.is_en_passant(move):
            captured = chess.PAWN
        else:
            captured = board.piece_type_at(move.to_square)
        reasons.append(f"Captures {PIECE_NAMES.get(captured, 'piece')}")

    after = board.copy(stack=False)
    after.push(move)
    if after.is_check():
        reasons.append("Check")
    if after.is_checkmate():
        reasons.append("Checkmate!")

    if board.is_kingside_castling(move):
        reasons.append("Kingside castling")
    elif board.is_queenside_castling(move):
        reasons.append("Queenside castling")

    if move.promotion:
        reasons.append(f"Promotes to {PIECE_NAMES[move.promotion]}")

    if not reasons:
        piece_type = board.piece_type_at(move.from_square)
        reasons.append(GENERIC_EXPLANATIONS.get(piece_type, "Moves piece"))
    return ", ".join(reasons)


class PositionAnalyzer:
    """Blocking convenience layer for interactive front ends."""

    def __init__(self, session: EngineSession, timeout: Optional[float] = None) -> None:
        self.session = session
        self.timeout = timeout

    def analyze_position(self, fen: str, depth: Optional[int] = None) -> PositionReport:
        board = board_from_fen(fen)
        analysis = self._wait(self.session.get_analysis(fen, 1, depth))
        return PositionReport(
            best_move=analysis.primary_move,
            evaluation=analysis.primary_score,
            formatted_evaluation=format_evaluation(analysis.primary_score),
            assessment=position_assessment(analysis.primary_score, board.turn == chess.WHITE),
            depth=analysis.depth,
        )

    def top_moves(self, fen: str, count: int = 3, depth: Optional[int] = None) -> List[TopMove]:
        board = board_from_fen(fen)
        analysis = self._wait(self.session.get_analysis(fen, count, depth))

        top = []
        for record in analysis.ranked_candidates:
            try:
                san = board.san(board.parse_uci(record.move))
            except ValueError:
                # keep the engine's notation
                san = record.move
            top.append(
                TopMove(
                    rank=record.rank,
                    move=san,
                    uci_move=record.move,
                    evaluation=record.score,
                    formatted_evaluation=format_evaluation(record.score),
                    explanation=explain_move(board, record.move),
                )
            )
        return top

    def _wait(self, future: "futures.Future[AnalysisResult]") -> AnalysisResult:
        try:
            return future.result(timeout=self.timeout)
        except futures.TimeoutError:
            # drop it from the queue, or stop the search holding the engine
            self.session.cancel(future)
            raise
