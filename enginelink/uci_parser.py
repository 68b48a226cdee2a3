"""Turn single lines of UCI engine output into typed events.

``parse_line`` is total: it never raises, and anything it does not
recognise (``info string`` chatter, ``option`` declarations, half-written
``info`` lines, garbage) comes back as an :class:`Ignored` event.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple, Union


class ScoreKind(Enum):
    CENTIPAWNS = "cp"
    MATE = "mate"


@dataclass(frozen=True)
class EvaluationScore:
    """Either a centipawn value or a forced-mate distance in moves."""

    kind: ScoreKind
    value: int

    @classmethod
    def centipawns(cls, value: int) -> "EvaluationScore":
        return cls(ScoreKind.CENTIPAWNS, value)

    @classmethod
    def mate(cls, value: int) -> "EvaluationScore":
        return cls(ScoreKind.MATE, value)

    @property
    def is_mate(self) -> bool:
        return self.kind is ScoreKind.MATE

    def negated(self) -> "EvaluationScore":
        return EvaluationScore(self.kind, -self.value)


@dataclass(frozen=True)
class HandshakeAck:
    pass


@dataclass(frozen=True)
class ReadyAck:
    pass


@dataclass(frozen=True)
class EngineIdentity:
    field: str
    value: str


@dataclass(frozen=True)
class SearchProgress:
    """One complete ``info`` record for a single candidate line."""

    rank: int
    depth: int
    score: EvaluationScore
    move: str
    pv: Tuple[str, ...] = ()


@dataclass(frozen=True)
class SearchResult:
    """The terminal ``bestmove`` line of a search."""

    move: Optional[str]
    ponder: Optional[str] = None


@dataclass(frozen=True)
class Ignored:
    line: str = ""


EngineEvent = Union[HandshakeAck, ReadyAck, EngineIdentity, SearchProgress, SearchResult, Ignored]

_NO_MOVE_TOKENS = {"(none)", "0000"}
_SCORE_BOUNDS = {"lowerbound", "upperbound"}


def parse_line(line: str) -> EngineEvent:
    if not isinstance(line, str):
        return Ignored()
    stripped = line.strip()
    if stripped == "uciok":
        return HandshakeAck()
    if stripped == "readyok":
        return ReadyAck()

    tokens = stripped.split()
    if not tokens:
        return Ignored(stripped)

    keyword = tokens[0]
    if keyword == "bestmove":
        return _parse_bestmove(tokens)
    if keyword == "info":
        return _parse_info(tokens[1:], stripped)
    if keyword == "id" and len(tokens) >= 3 and tokens[1] in ("name", "author"):
        return EngineIdentity(tokens[1], " ".join(tokens[2:]))
    return Ignored(stripped)


def _parse_bestmove(tokens) -> SearchResult:
    move = tokens[1] if len(tokens) > 1 else None
    if move in _NO_MOVE_TOKENS:
        move = None

    ponder = None
    if len(tokens) > 3 and tokens[2] == "ponder" and tokens[3] not in _NO_MOVE_TOKENS:
        ponder = tokens[3]
    return SearchResult(move=move, ponder=ponder)


def _parse_info(tokens, line: str) -> EngineEvent:
    depth: Optional[int] = None
    rank: Optional[int] = None
    score: Optional[EvaluationScore] = None
    pv: Tuple[str, ...] = ()

    index = 0
    while index < len(tokens):
        key = tokens[index]
        if key == "string":
            # free text up to the end of the line
            return Ignored(line)
        if key == "pv":
            pv = tuple(tokens[index + 1:])
            break
        if key in ("depth", "multipv"):
            value = _to_int(tokens, index + 1)
            if value is None:
                return Ignored(line)
            if key == "depth":
                depth = value
            else:
                rank = value
            index += 2
            continue
        if key == "score":
            if index + 1 >= len(tokens):
                return Ignored(line)
            value = _to_int(tokens, index + 2)
            if value is None:
                return Ignored(line)
            kind = tokens[index + 1]
            if kind == "cp":
                score = EvaluationScore.centipawns(value)
            elif kind == "mate":
                score = EvaluationScore.mate(value)
            else:
                return Ignored(line)
            index += 3
            if index < len(tokens) and tokens[index] in _SCORE_BOUNDS:
                index += 1
            continue
        index += 1

    if rank is None or score is None or not pv:
        return Ignored(line)
    if rank < 1:
        return Ignored(line)
    return SearchProgress(
        rank=rank,
        depth=depth if depth is not None else 0,
        score=score,
        move=pv[0],
        pv=pv,
    )


def _to_int(tokens, index: int) -> Optional[int]:
    if index >= len(tokens):
        return None
    try:
        return int(tokens[index])
    except ValueError:
        return None
