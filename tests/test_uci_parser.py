import pytest

from enginelink.uci_parser import (
    EngineIdentity,
    EvaluationScore,
    HandshakeAck,
    Ignored,
    ReadyAck,
    ScoreKind,
    SearchProgress,
    SearchResult,
    parse_line,
)


def test_handshake_tokens_are_exact_matches() -> None:
    assert parse_line("uciok") == HandshakeAck()
    assert parse_line("  readyok \n") == ReadyAck()
    assert isinstance(parse_line("uciokay"), Ignored)


def test_identity_lines_keep_full_text() -> None:
    assert parse_line("id name Stockfish 16.1") == EngineIdentity("name", "Stockfish 16.1")
    assert parse_line("id author the Stockfish developers") == EngineIdentity(
        "author", "the Stockfish developers"
    )


def test_bestmove_with_ponder() -> None:
    assert parse_line("bestmove e2e4 ponder e7e5") == SearchResult("e2e4", "e7e5")
    assert parse_line("bestmove g1f3") == SearchResult("g1f3")


@pytest.mark.parametrize("line", ["bestmove (none)", "bestmove 0000", "bestmove"])
def test_bestmove_without_move(line: str) -> None:
    result = parse_line(line)
    assert isinstance(result, SearchResult)
    assert result.move is None


def test_info_line_with_centipawn_score() -> None:
    line = "info depth 12 seldepth 18 multipv 2 score cp -35 nodes 12345 nps 1000 pv d7d5 c2c4 e7e6"
    event = parse_line(line)
    assert event == SearchProgress(
        rank=2,
        depth=12,
        score=EvaluationScore(ScoreKind.CENTIPAWNS, -35),
        move="d7d5",
        pv=("d7d5", "c2c4", "e7e6"),
    )


def test_info_line_with_mate_score_and_bound() -> None:
    event = parse_line("info depth 20 multipv 1 score mate -3 upperbound nodes 10 pv h7h8q")
    assert isinstance(event, SearchProgress)
    assert event.score.is_mate
    assert event.score.value == -3
    assert event.move == "h7h8q"


def test_info_line_without_depth_defaults_to_zero() -> None:
    event = parse_line("info multipv 1 score cp 10 pv e2e4")
    assert isinstance(event, SearchProgress)
    assert event.depth == 0


@pytest.mark.parametrize(
    "line",
    [
        "info depth 5 score cp 10 pv e2e4",
        "info depth 5 multipv 1 pv e2e4",
        "info depth 5 multipv 1 score cp 10",
        "info depth 5 multipv 1 score cp 10 pv",
        "info depth five multipv 1 score cp 10 pv e2e4",
        "info depth 5 multipv 1 score cp ten pv e2e4",
        "info depth 5 multipv 1 score wdl 10 pv e2e4",
        "info depth 5 multipv 0 score cp 10 pv e2e4",
        "info depth 5 multipv 1 score",
        "info string NNUE evaluation using nn-ad9b42354671.nnue enabled",
        "info depth 5 currmove e2e4 currmovenumber 1",
    ],
)
def test_incomplete_or_malformed_info_is_ignored(line: str) -> None:
    assert isinstance(parse_line(line), Ignored)


@pytest.mark.parametrize(
    "line",
    ["", "   ", "option name Hash type spin default 16", "Stockfish 16 by the developers", "id", "garbage ~~~"],
)
def test_other_lines_are_ignored(line: str) -> None:
    assert isinstance(parse_line(line), Ignored)


def test_non_string_input_is_ignored() -> None:
    assert isinstance(parse_line(None), Ignored)  # type: ignore[arg-type]


def test_score_helpers() -> None:
    score = EvaluationScore.centipawns(42)
    assert not score.is_mate
    assert score.negated() == EvaluationScore.centipawns(-42)
    assert EvaluationScore.mate(2).negated() == EvaluationScore(ScoreKind.MATE, -2)
