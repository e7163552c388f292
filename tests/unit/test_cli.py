"""Unit tests for CLI argument parsing and commands."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from cdp.cli import _parse_collateral, build_parser, main


CONFIG = """\
collateral:
  - address: WETH
    price: "2000"
  - address: WBTC
    decimals: 8
    price: "1000"
"""


@pytest.fixture()
def config_path(tmp_path: Path) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(CONFIG))
    return str(path)


def _run(argv: list[str]) -> int:
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


class TestBuildParser:
    def test_constants_command(self) -> None:
        args = build_parser().parse_args(["constants"])
        assert args.command == "constants"

    def test_health_command(self) -> None:
        args = build_parser().parse_args(
            ["health", "--debt", "100", "--collateral", "WETH=10", "--collateral", "WBTC=1"]
        )
        assert args.debt == "100"
        assert args.collateral == ["WETH=10", "WBTC=1"]

    def test_quote_command(self) -> None:
        args = build_parser().parse_args(["quote", "--asset", "WETH", "--debt", "500"])
        assert (args.asset, args.debt) == ("WETH", "500")

    def test_global_flags(self) -> None:
        args = build_parser().parse_args(["--config", "/tmp/c.yaml", "--log-level", "DEBUG", "constants"])
        assert args.config == "/tmp/c.yaml"
        assert args.log_level == "DEBUG"

    def test_default_log_level(self) -> None:
        assert build_parser().parse_args(["constants"]).log_level == "WARNING"

    def test_no_command(self) -> None:
        assert build_parser().parse_args([]).command is None


class TestParseCollateral:
    def test_pairs(self) -> None:
        assert _parse_collateral(["WETH=10", "WBTC=0.5"]) == [("WETH", "10"), ("WBTC", "0.5")]

    @pytest.mark.parametrize("item", ["WETH", "=10", "WETH="])
    def test_malformed(self, item: str) -> None:
        with pytest.raises(ValueError):
            _parse_collateral([item])


class TestMain:
    def test_no_command_exits_1(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run([]) == 1

    def test_constants(self, config_path: str, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["--config", config_path, "constants"]) == 0
        out = capsys.readouterr().out
        assert "liquidation_threshold:     50" in out
        assert "liquidation_bonus:         10" in out
        assert "WETH, WBTC" in out

    def test_health(self, config_path: str, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run([
            "--config", config_path, "health",
            "--debt", "100", "--collateral", "WETH=10", "--collateral", "WBTC=1",
        ]) == 0
        out = capsys.readouterr().out
        assert "$21,000.00" in out
        assert "105.0000" in out
        assert "solvent" in out

    def test_health_liquidatable(self, config_path: str, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["--config", config_path, "health", "--debt", "1000", "--collateral", "WETH=0.5"]) == 0
        out = capsys.readouterr().out
        assert "0.5000" in out
        assert "liquidatable" in out

    def test_health_without_debt(self, config_path: str, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["--config", config_path, "health", "--debt", "0", "--collateral", "WETH=1"]) == 0
        assert "max (no debt)" in capsys.readouterr().out

    def test_quote(self, config_path: str, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["--config", config_path, "quote", "--asset", "WBTC", "--debt", "500"]) == 0
        out = capsys.readouterr().out
        assert "base collateral:  0.5 WBTC" in out
        assert "bonus collateral: 0.05 WBTC" in out
        assert "total seized:     0.55 WBTC" in out

    def test_unknown_asset_exits_2(self, config_path: str, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["--config", config_path, "quote", "--asset", "DOGE", "--debt", "1"]) == 2
        assert "DOGE" in capsys.readouterr().err

    def test_missing_config_exits_2(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["--config", str(tmp_path / "missing.yaml"), "constants"]) == 2
        assert "not found" in capsys.readouterr().err

    @pytest.mark.parametrize(
        "extra",
        [
            ["--debt", "abc"],
            ["--debt", "inf"],
            ["--debt", "NaN"],
            ["--debt", "100", "--collateral", "WETH=x"],
        ],
    )
    def test_non_numeric_amount_exits_2(
        self, config_path: str, extra: list[str], capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert _run(["--config", config_path, "health", *extra]) == 2
        assert "error:" in capsys.readouterr().err

    def test_non_numeric_quote_exits_2(self, config_path: str, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run(["--config", config_path, "quote", "--asset", "WETH", "--debt", "lots"]) == 2
        assert "lots" in capsys.readouterr().err
