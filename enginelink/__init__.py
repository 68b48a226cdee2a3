"""Request/response coordination for a long-lived UCI chess engine."""

from .analysis import AnalysisAggregator, AnalysisResult, CandidateRecord
from .config import MAX_CANDIDATES, EngineOptions, load_options
from .engine_comm import EngineBinding, SubprocessEngine
from .errors import (
    EngineCrashed,
    EngineError,
    InitializationTimeout,
    InvalidConfiguration,
    InvalidPosition,
    ResponseTimeout,
)
from .position_analyzer import (
    PositionAnalyzer,
    PositionReport,
    TopMove,
    explain_move,
    format_evaluation,
    position_assessment,
)
from .session import EngineSession
from .uci_parser import EvaluationScore, ScoreKind, parse_line

__all__ = [
    "AnalysisAggregator",
    "AnalysisResult",
    "CandidateRecord",
    "EngineBinding",
    "EngineCrashed",
    "EngineError",
    "EngineOptions",
    "EngineSession",
    "EvaluationScore",
    "InitializationTimeout",
    "InvalidConfiguration",
    "InvalidPosition",
    "MAX_CANDIDATES",
    "PositionAnalyzer",
    "PositionReport",
    "ResponseTimeout",
    "ScoreKind",
    "SubprocessEngine",
    "TopMove",
    "explain_move",
    "format_evaluation",
    "load_options",
    "parse_line",
    "position_assessment",
]
