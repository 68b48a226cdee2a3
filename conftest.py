import os
import sys

import pytest

# Ensure repo-local imports (e.g., `import enginelink`) resolve without an install.
src_dir = os.path.abspath(os.path.dirname(__file__))
if src_dir not in sys.path:
    sys.path.insert(0, src_dir)


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "-Q",
        "--qt",
        action="store_true",
        default=False,
        dest="run_qt",
        help="Run tests marked with @pytest.mark.qt (spawns engines through QProcess)",
    )
    parser.addoption(
        "-E",
        "--engine",
        action="store_true",
        default=False,
        dest="run_real_engine",
        help="Run tests marked with @pytest.mark.real_engine (requires stockfish on PATH)",
    )


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    if not config.getoption("run_qt"):
        skip_qt = pytest.mark.skip(reason="use -Q/--qt to enable QProcess tests")
        for item in items:
            if "qt" in item.keywords:
                item.add_marker(skip_qt)

    if not config.getoption("run_real_engine"):
        skip_engine = pytest.mark.skip(
            reason="use -E/--engine to enable tests against a real engine"
        )
        for item in items:
            if "real_engine" in item.keywords:
                item.add_marker(skip_engine)
