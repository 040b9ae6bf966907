import json
from pathlib import Path

import pytest

from strategy_engine.main import EXIT_ERROR, EXIT_WALLET_CORRUPT, _build_parser, main


def test_invalid_provider_choice() -> None:
    parser = _build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args(["--market-data", "mockk", "resolve", "SOL"])


@pytest.mark.parametrize("bps", ["0", "5001", "abc"])
def test_slippage_bounds(bps: str) -> None:
    parser = _build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args(["quote", "SOL", "USDC", "1", "--slippage-bps", bps])


def test_amount_must_be_positive() -> None:
    parser = _build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args(["swap", "SOL", "USDC", "-1"])


def test_strategy_config_sources_are_exclusive() -> None:
    parser = _build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args(
            ["strategy", "create", "--name", "a", "--description", "b", "--config-json", "{}", "--config-file", "x.json"]
        )
    with pytest.raises(SystemExit):
        parser.parse_args(["strategy", "create", "--name", "a", "--description", "b"])


def test_export_requires_reason() -> None:
    parser = _build_parser()
    with pytest.raises(SystemExit):
        parser.parse_args(["wallet", "export"])
    args = parser.parse_args(["wallet", "export", "--reason", "backup"])
    assert args.reason == "backup"


def _write_config(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        "\n".join(
            [
                "storage:",
                f"  strategies_path: {tmp_path / 'strategies.json'}",
                f"  trades_path: {tmp_path / 'trades.jsonl'}",
                "wallet:",
                f"  path: {tmp_path / 'wallet.json'}",
                "providers:",
                "  market_data: mock",
                "  aggregator: mock",
                "  rpc: mock",
                "logging:",
                "  level: WARNING",
            ]
        ),
        encoding="utf-8",
    )
    return path


def test_invalid_strategy_exits_with_error(tmp_path: Path, capsys) -> None:
    config = _write_config(tmp_path)
    code = main(
        [
            "--config",
            str(config),
            "strategy",
            "create",
            "--name",
            "bad",
            "--description",
            "bad",
            "--config-json",
            json.dumps({"type": "SPOT", "input_token": "SOL"}),
        ]
    )
    assert code == EXIT_ERROR


def test_resolve_prints_json(tmp_path: Path, capsys) -> None:
    config = _write_config(tmp_path)
    assert main(["--config", str(config), "--json", "resolve", "usdc"]) == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["symbol"] == "USDC"
    assert payload["decimals"] == 6


def test_corrupt_wallet_exit_code(tmp_path: Path) -> None:
    config = _write_config(tmp_path)
    (tmp_path / "wallet.json").write_text("[]", encoding="utf-8")
    assert main(["--config", str(config), "wallet", "info"]) == EXIT_WALLET_CORRUPT
