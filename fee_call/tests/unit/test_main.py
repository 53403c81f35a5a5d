"""
Unit tests for the fee-call command line
"""

import json
import logging
from unittest.mock import AsyncMock, patch

import pytest

from fee_call.helpers.fee_contract import FeeCallResult
from fee_call.main import build_parser, main, parse_cli_value

ENCODED_500 = "0xae06c1b7" + "00" * 30 + "01f4"
CONTRACT_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _healthy(url):
    return {"status": "healthy", "url": url, "chain_id": 31337, "block_number": 0}


class TestEncodeCommand:
    """fee-call encode"""

    def test_default_call(self, capsys):
        assert main(["encode"]) == 0
        assert capsys.readouterr().out.strip() == ENCODED_500

    def test_explicit_fee(self, capsys):
        assert main(["encode", "250"]) == 0
        assert capsys.readouterr().out.strip().endswith("00fa")

    def test_custom_abi(self, capsys):
        assert main([
            "encode",
            "--abi", "function setFeePercentage(uint256 fee)",
            "--abi", "function setOwner(address owner)",
            "--function", "setFeePercentage",
            "500",
        ]) == 0
        assert capsys.readouterr().out.strip() == ENCODED_500

    def test_several_functions_need_a_name(self, capsys):
        assert main([
            "encode",
            "--abi", "function a(uint256)",
            "--abi", "function b(uint256)",
            "1",
        ]) == 1
        assert "--function is required" in capsys.readouterr().out

    @pytest.mark.parametrize("raw", ["-1", "5.5", '"500"', "115792089237316195423570985008687907853269984665640564039457584007913129639936"])
    def test_invalid_values(self, raw, capsys):
        assert main(["encode", raw]) == 1
        assert "Encoding failed" in capsys.readouterr().out

    def test_parse_cli_value(self):
        assert parse_cli_value("500") == 500
        assert parse_cli_value("[1, 2]") == [1, 2]
        assert parse_cli_value("true") is True
        assert parse_cli_value("0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266") == \
            "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"


class TestDecodeCommand:
    """fee-call decode"""

    def test_decode(self, capsys):
        assert main(["decode", ENCODED_500]) == 0

        out = capsys.readouterr().out
        assert "function setFeePercentage(uint256 newFeePercentage)" in out
        assert "newFeePercentage (uint256): 500" in out

    def test_decode_unknown_selector(self, capsys):
        assert main(["decode", "0xdeadbeef"]) == 1
        assert "Decoding failed" in capsys.readouterr().out


class TestDeployAndCallCommand:
    """fee-call deploy-and-call with the chain mocked out"""

    def test_parser_defaults(self):
        args = build_parser().parse_args(["deploy-and-call"])

        assert args.fee is None
        assert args.start_anvil is False
        assert args.output_dir == "output"

    def test_success_writes_result(self, tmp_path):
        result = FeeCallResult(
            contract_address=CONTRACT_ADDRESS,
            deploy_tx_hash="0xaa",
            call_tx_hash="0xbb",
            call_data=ENCODED_500,
            requested_fee=500,
            fee_percentage=500
        )

        with patch("fee_call.main.RpcClient") as client_cls, \
                patch("fee_call.main.deploy_and_call", AsyncMock(return_value=result)) as run:
            client = client_cls.return_value.__aenter__.return_value
            client.health_check = AsyncMock(return_value=_healthy("http://127.0.0.1:8545"))
            client.get_code = AsyncMock(return_value="0x6000")

            exit_code = main(["deploy-and-call", "--fee", "500", "--output-dir", str(tmp_path)])

        assert exit_code == 0
        assert run.await_args.kwargs["fee_percentage"] == 500
        saved = json.loads((tmp_path / "fee_call_result.json").read_text())
        assert saved["success"] is True
        assert saved["fee_percentage"] == 500
        assert saved["call_data"] == ENCODED_500

    def test_unreachable_node_is_logged(self, tmp_path, capsys):
        with patch("fee_call.main.RpcClient") as client_cls, \
                patch("fee_call.main.deploy_and_call", AsyncMock()) as run:
            client = client_cls.return_value.__aenter__.return_value
            client.health_check = AsyncMock(return_value={
                "status": "unreachable",
                "url": "http://127.0.0.1:1",
                "error": "[1201] Cannot reach http://127.0.0.1:1",
            })

            exit_code = main([
                "deploy-and-call",
                "--rpc-url", "http://127.0.0.1:1",
                "--output-dir", str(tmp_path),
            ])

        assert exit_code == 1
        run.assert_not_called()
        assert "Error: [1201] Node at http://127.0.0.1:1 is not reachable" in capsys.readouterr().out
        saved = json.loads((tmp_path / "fee_call_result.json").read_text())
        assert saved["success"] is False
        assert saved["error"]["error"] == "NodeConnectionError"

    def test_any_failure_is_caught(self, tmp_path, capsys):
        with patch("fee_call.main.RpcClient") as client_cls, \
                patch("fee_call.main.deploy_and_call",
                      AsyncMock(side_effect=RuntimeError("insufficient funds"))):
            client = client_cls.return_value.__aenter__.return_value
            client.health_check = AsyncMock(return_value=_healthy("http://127.0.0.1:8545"))

            exit_code = main(["deploy-and-call", "--output-dir", str(tmp_path)])

        assert exit_code == 1
        assert "Error: insufficient funds" in capsys.readouterr().out
        saved = json.loads((tmp_path / "fee_call_result.json").read_text())
        assert saved["error"] == "insufficient funds"

    def test_chain_id_mismatch(self, tmp_path, capsys):
        config_file = tmp_path / "network.json"
        config_file.write_text(json.dumps({"chain_id": 1}))

        with patch("fee_call.main.RpcClient") as client_cls, \
                patch("fee_call.main.deploy_and_call", AsyncMock()) as run:
            client = client_cls.return_value.__aenter__.return_value
            client.health_check = AsyncMock(return_value=_healthy("http://127.0.0.1:8545"))

            exit_code = main([
                "deploy-and-call",
                "--config", str(config_file),
                "--output-dir", str(tmp_path),
            ])

        assert exit_code == 1
        run.assert_not_called()
        assert "Chain id mismatch" in capsys.readouterr().out

    def test_invalid_private_key(self, tmp_path, capsys):
        with patch("fee_call.main.RpcClient") as client_cls:
            client = client_cls.return_value.__aenter__.return_value
            client.health_check = AsyncMock(return_value=_healthy("http://127.0.0.1:8545"))

            exit_code = main([
                "deploy-and-call",
                "--private-key", "0x" + "00" * 32,
                "--output-dir", str(tmp_path),
            ])

        assert exit_code == 1
        assert "Error:" in capsys.readouterr().out
