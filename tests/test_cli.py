"""Tests for the target-onchain CLI."""

import json

import pytest

from target_onchain import config
from target_onchain.attestations import AttestationClient
from target_onchain.cli import build_parser, main
from target_onchain.core import Attestation

from conftest import encode_string


@pytest.fixture
def cli_settings(settings, monkeypatch):
    monkeypatch.setattr(config, "_settings", settings)
    return settings


# ─── Parser tests ──────────────────────────────────────────────────

class TestParser:
    def test_no_command_exits(self):
        with pytest.raises(SystemExit):
            main([])

    def test_json_flag_parsed(self):
        args = build_parser().parse_args(["--json", "decode", "0x00"])
        assert args.json is True
        assert args.command == "decode"
        assert args.schema == "string verifiedCountry"

    def test_serve_defaults(self):
        args = build_parser().parse_args(["serve"])
        assert args.port == 8000


# ─── Decode command ────────────────────────────────────────────────

class TestDecode:
    def test_decode_country(self, capsys):
        result = main(["--json", "decode", encode_string("Argentina")])
        assert result == {"verifiedCountry": "Argentina"}
        assert json.loads(capsys.readouterr().out) == {"verifiedCountry": "Argentina"}

    def test_decode_human_output(self, capsys):
        main(["decode", encode_string("AR")])
        assert "verifiedCountry: AR" in capsys.readouterr().out

    def test_decode_custom_schema(self):
        payload = "0x" + (5).to_bytes(32, "big").hex()
        assert main(["decode", payload, "--schema", "uint8 score"]) == {"score": 5}

    def test_decode_malformed_exits(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["decode", "0x1234"])
        assert exc.value.code == 1
        assert "Error" in capsys.readouterr().err


# ─── Stores command ────────────────────────────────────────────────

class TestStores:
    def test_search(self, cli_settings):
        result = main(["--json", "stores", "--search", "MERCH"])
        assert [s["name"] for s in result] == ["Slice Merch", "Merch Corner"]

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "s.json"
        path.write_text(json.dumps([{"name": "Only", "creatorAddress": "0x1"}]))
        result = main(["stores", "--path", str(path), "--creator", "0x1"])
        assert [s["name"] for s in result] == ["Only"]

    def test_empty_human_output(self, cli_settings, capsys):
        main(["stores", "--search", "zzz"])
        assert "No stores found" in capsys.readouterr().out

    def test_missing_file_exits(self, tmp_path):
        with pytest.raises(SystemExit):
            main(["stores", "--path", str(tmp_path / "missing.json")])


# ─── Verify command ────────────────────────────────────────────────

class TestVerify:
    def test_unknown_criteria(self, cli_settings, capsys):
        result = main(["verify", "POAPS_OWNED", "0xabc"])
        assert result["valid"] is False
        assert result["explanation"] == ""
        assert "No verification strategy configured" in capsys.readouterr().out

    def test_account_verified(self, cli_settings, monkeypatch, capsys):
        calls = []

        async def fake_fetch(self, address, schema_id=None, attester_id=None):
            calls.append((address, schema_id, attester_id))
            return [Attestation(recipient=address, schema_id=schema_id, id="0xatt")]

        monkeypatch.setattr(AttestationClient, "fetch_valid_attestations", fake_fetch)
        result = main(["--json", "verify", "COINBASE_ONCHAIN_VERIFICATIONS_ACCOUNT", "0xabc"])
        assert calls == [("0xabc", "0xaccount", "0xcoinbase")]
        assert result["valid"] is True
        assert result["data"]["attestation"]["id"] == "0xatt"
        out = json.loads(capsys.readouterr().out)
        assert out["explanation"].startswith("Coinbase account member attestation for 0xabc")

    def test_running_count(self, cli_settings, monkeypatch):
        async def fake_fetch(self, address, schema_id=None, attester_id=None):
            return [Attestation(recipient=address)] * 3

        monkeypatch.setattr(AttestationClient, "fetch_valid_attestations", fake_fetch)
        result = main(["verify", "RECEIPTS_XYZ_ALL_TIME_RUNNING", "0xabc"])
        assert result["valid"] is False
        assert result["data"] == {"count": 3}
