"""
Tests for the phylomcmc command-line interface.
"""

import pytest
from typer.testing import CliRunner

from phylomcmc import __version__
from phylomcmc.cli import app

runner = CliRunner()

SMALL = ["--n-tips", "8", "--tree-seed", "4"]


def test_version():
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_simulate_prints_tree_and_tips():
    result = runner.invoke(app, ["simulate", *SMALL])
    assert result.exit_code == 0
    assert result.stdout.lstrip().startswith("(")
    assert "State" in result.stdout
    assert "t1" in result.stdout


class TestRun:
    def test_tables(self):
        result = runner.invoke(
            app,
            ["run", "--iterations", "200", "--seed", "3", "--prior", "uniform",
             "--prior-param", "0", "--prior-param", "5", *SMALL],
        )
        assert result.exit_code == 0, result.stdout
        assert "First 25 iterations" in result.stdout
        assert "Posterior summary" in result.stdout
        assert "Uniform(lower=0, upper=5)" in result.stdout

    def test_head_rows(self):
        result = runner.invoke(app, ["run", "--iterations", "100", "--head", "5", "--seed", "1", *SMALL])
        assert result.exit_code == 0, result.stdout
        assert "First 5 iterations" in result.stdout

    @pytest.mark.parametrize("args", [
        ["--iterations", "10"],
        ["--start", "0"],
        ["--width", "-1"],
        ["--prior", "gamma"],
        ["--prior", "exponential", "--prior-param", "-2"],
        ["--iterations", "100", "--burn-in", "100"],
    ])
    def test_invalid_input_exits_with_error(self, args):
        result = runner.invoke(app, ["run", *args, *SMALL])
        assert result.exit_code == 1
        assert "Error" in result.stdout

    def test_negative_head_reported(self):
        result = runner.invoke(app, ["run", "--iterations", "100", "--head", "-1", "--seed", "1", *SMALL])
        assert result.exit_code == 1
        assert "Error" in result.stdout
        assert result.exception is None or isinstance(result.exception, SystemExit)

    def test_plot_written(self, tmp_path):
        pytest.importorskip("matplotlib")
        path = tmp_path / "report.png"
        result = runner.invoke(
            app,
            ["run", "--iterations", "150", "--seed", "2", "--burn-in", "20", "--plot", str(path), *SMALL],
        )
        assert result.exit_code == 0, result.stdout
        assert path.exists()
        assert path.stat().st_size > 0
        assert "Figure written to" in result.stdout


def test_asr_table():
    result = runner.invoke(app, ["asr", "--rate", "0.4", *SMALL])
    assert result.exit_code == 0, result.stdout
    assert "P(1)" in result.stdout
    assert "P(0)" in result.stdout


def test_asr_invalid_rate():
    result = runner.invoke(app, ["asr", "--rate", "-1", *SMALL])
    assert result.exit_code == 1
