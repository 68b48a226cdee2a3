"""Accumulate multi-candidate progress records into a final analysis."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .uci_parser import EvaluationScore, ScoreKind, SearchProgress, SearchResult


@dataclass(frozen=True)
class CandidateRecord:
    """Latest known state of one ranked candidate line."""

    rank: int
    score: EvaluationScore
    move: str
    depth: int


@dataclass(frozen=True)
class AnalysisResult:
    """Outcome of a finished search."""

    primary_move: Optional[str]
    primary_score: Optional[EvaluationScore] = None
    ranked_candidates: List[CandidateRecord] = field(default_factory=list)
    ponder: Optional[str] = None
    depth: int = 0


class AnalysisAggregator:
    """Keeps the most recent record per rank until the terminal line arrives.

    Engines report centipawns from the side to move's point of view; records
    are stored from White's point of view. Mate distances stay relative to
    the side to move.
    """

    def __init__(self, white_to_move: bool = True, max_rank: Optional[int] = None) -> None:
        self.white_to_move = white_to_move
        self.max_rank = max_rank
        self._records: Dict[int, CandidateRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    def observe(self, progress: SearchProgress) -> None:
        if self.max_rank is not None and progress.rank > self.max_rank:
            return
        self._records[progress.rank] = CandidateRecord(
            rank=progress.rank,
            score=self._normalize(progress.score),
            move=progress.move,
            depth=progress.depth,
        )

    def snapshot(self) -> List[CandidateRecord]:
        return [self._records[rank] for rank in sorted(self._records)]

    def finalize(self, result: SearchResult) -> AnalysisResult:
        ranked = self.snapshot()
        primary_score = ranked[0].score if ranked and ranked[0].rank == 1 else None
        depth = max((record.depth for record in ranked), default=0)
        return AnalysisResult(
            primary_move=result.move,
            primary_score=primary_score,
            ranked_candidates=ranked,
            ponder=result.ponder,
            depth=depth,
        )

    def _normalize(self, score: EvaluationScore) -> EvaluationScore:
        if score.kind is ScoreKind.CENTIPAWNS and not self.white_to_move:
            return score.negated()
        return score
