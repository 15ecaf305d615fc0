"""
CLI tests: parameter ceremony, setup, prove and verify round trips.

Run with: pytest tests/test_cli.py -v

Copyright (c) 2026 Momentum. All rights reserved.
"""

import json
from pathlib import Path

import pytest

from agegate.cli import main, parse_day
from agegate.zk.params import DEFAULT_SEED

from conftest import ADULT_BIRTH, ADULT_DAYS, MINOR_BIRTH, TODAY


def _run(capsys, *argv):
    code = main(list(argv))
    captured = capsys.readouterr()
    return code, captured.out, captured.err


@pytest.fixture
def params_file(tmp_path: Path, capsys):
    path = tmp_path / "params.json"
    code, out, _ = _run(capsys, "params", "generate", "--out", str(path))
    assert code == 0
    return path, json.loads(out)["digest"]


class TestParseDay:

    def test_day_count_and_iso(self):
        assert parse_day("20000") == 20000
        assert parse_day("2024-10-04") == TODAY
        assert parse_day("1970-01-01") == 0

    def test_rejects_garbage(self):
        import argparse
        with pytest.raises(argparse.ArgumentTypeError):
            parse_day("next tuesday")


class TestParamsCommands:

    def test_generate_and_digest(self, params_file, capsys):
        path, digest = params_file
        code, out, _ = _run(capsys, "params", "digest", str(path))
        assert code == 0
        report = json.loads(out)
        assert report["digest"] == digest
        assert report["generators_valid"] is True
        assert report["signed"] is False

    def test_digest_of_incomplete_file(self, tmp_path: Path, capsys):
        path = tmp_path / "partial.json"
        path.write_text(json.dumps({"seed": "00", "max_degree": 4}), encoding="utf-8")
        code, out, err = _run(capsys, "params", "digest", str(path))
        assert code == 1
        assert out == ""
        assert "Error: parameters document is incomplete or malformed" in err

    def test_generate_records_seed(self, tmp_path: Path, capsys):
        code, out, _ = _run(capsys, "params", "generate", "--out", str(tmp_path / "p.json"))
        assert code == 0
        assert json.loads(out)["seed"] == DEFAULT_SEED

    def test_keygen_and_sign(self, params_file, tmp_path: Path, capsys):
        path, digest = params_file
        key_path = tmp_path / "ceremony.jwk"
        code, out, _ = _run(capsys, "params", "keygen", "--out", str(key_path))
        assert code == 0
        signer = json.loads(out)["signer"]

        signed_path = tmp_path / "signed.json"
        code, out, _ = _run(capsys, "params", "sign", str(path), "--key", str(key_path), "--out", str(signed_path))
        assert code == 0
        assert json.loads(out)["signer"] == signer

        code, out, _ = _run(capsys, "params", "digest", str(signed_path))
        report = json.loads(out)
        assert report["signed"] is True
        assert report["digest"] == digest

    def test_yaml_output(self, params_file, capsys):
        path, digest = params_file
        code, out, _ = _run(capsys, "--format", "yaml", "params", "digest", str(path))
        assert code == 0
        assert f"digest: {digest}" in out


class TestProofCommands:

    def test_setup(self, params_file, tmp_path: Path, capsys):
        path, digest = params_file
        vk_path = tmp_path / "vk.json"
        code, out, _ = _run(capsys, "setup", "--params", str(path), "--digest", digest, "--out", str(vk_path))
        assert code == 0
        report = json.loads(out)
        assert report["params_digest"] == digest
        assert json.loads(vk_path.read_text(encoding="utf-8"))["params_digest"] == digest

    def test_missing_parameters(self, capsys):
        code, _, err = _run(capsys, "setup")
        assert code == 2
        assert "--params/--digest" in err

    def test_wrong_digest(self, params_file, capsys):
        path, _ = params_file
        code, _, err = _run(capsys, "setup", "--params", str(path), "--digest", "0" * 64)
        assert code == 1
        assert "Error:" in err

    def test_prove_then_verify(self, params_file, tmp_path: Path, capsys):
        path, digest = params_file
        proof_path = tmp_path / "proof.json"
        code, out, _ = _run(
            capsys, "prove",
            "--params", str(path), "--digest", digest,
            "--birth-date", str(ADULT_BIRTH),
            "--minimum-age", str(ADULT_DAYS),
            "--current-date", "2024-10-04",
            "--binding", "alice",
            "--out", str(proof_path),
        )
        assert code == 0
        document = json.loads(out)
        assert document["ok"] is True
        assert document["public_inputs"] == {"minimum_age": ADULT_DAYS, "current_date": TODAY}

        code, out, _ = _run(capsys, "verify", str(proof_path), "--params", str(path), "--digest", digest)
        assert code == 0
        result = json.loads(out)
        assert result["outcome"] == "accepted"
        assert result["birth_commitment"] == document["birth_commitment"]

        code, out, err = _run(
            capsys, "verify", str(proof_path),
            "--params", str(path), "--digest", digest, "--binding", "mallory",
        )
        assert code == 3
        assert json.loads(out)["outcome"] == "rejected"
        assert "proof rejected" in err

    def test_verify_out_of_gas(self, params_file, tmp_path: Path, capsys):
        path, digest = params_file
        proof_path = tmp_path / "proof.json"
        _run(
            capsys, "prove", "--params", str(path), "--digest", digest,
            "--birth-date", str(ADULT_BIRTH), "--minimum-age", str(ADULT_DAYS),
            "--current-date", str(TODAY), "--binding", "alice", "--out", str(proof_path),
        )
        code, out, _ = _run(
            capsys, "verify", str(proof_path),
            "--params", str(path), "--digest", digest, "--gas-limit", "1000",
        )
        assert code == 3
        assert json.loads(out)["outcome"] == "out_of_resources"

    def test_prove_carries_notification_handle(self, params_file, capsys):
        path, digest = params_file
        code, out, _ = _run(
            capsys, "prove", "--params", str(path), "--digest", digest,
            "--birth-date", str(ADULT_BIRTH), "--minimum-age", str(ADULT_DAYS),
            "--current-date", str(TODAY), "--binding", "alice",
            "--notification-handle", "webhook:7f3a",
        )
        assert code == 0
        assert json.loads(out)["notification_handle"] == "webhook:7f3a"

    def test_prove_rejects_bad_notification_handle(self, params_file, capsys):
        path, digest = params_file
        code, _, err = _run(
            capsys, "prove", "--params", str(path), "--digest", digest,
            "--birth-date", str(ADULT_BIRTH), "--minimum-age", str(ADULT_DAYS),
            "--current-date", str(TODAY), "--binding", "alice",
            "--notification-handle", "has spaces",
        )
        assert code == 2
        assert "--notification-handle" in err

    def test_under_age_prove_fails(self, params_file, capsys):
        path, digest = params_file
        code, _, err = _run(
            capsys, "prove", "--params", str(path), "--digest", digest,
            "--birth-date", str(MINOR_BIRTH), "--minimum-age", str(ADULT_DAYS),
            "--current-date", str(TODAY), "--binding", "bob",
        )
        assert code == 2
        assert "age.recompose" in err


class TestConfigCommands:

    def test_get(self, capsys):
        code, out, _ = _run(capsys, "config", "get", "proof.range_bits")
        assert code == 0
        assert json.loads(out) == {"path": "proof.range_bits", "value": 16}

    def test_get_unknown(self, capsys):
        code, _, err = _run(capsys, "config", "get", "proof.nope")
        assert code == 1
        assert "Error:" in err

    def test_show_and_validate(self, capsys):
        code, out, _ = _run(capsys, "config", "show")
        assert code == 0
        assert json.loads(out)["settlement"]["grace_period_seconds"] == 604800

        code, out, _ = _run(capsys, "config", "validate")
        assert code == 0
        assert json.loads(out) == {"valid": True, "errors": []}

    def test_validate_reports_errors(self, capsys, monkeypatch):
        monkeypatch.setenv("AGEGATE_SWEEP_BATCH", "0")
        code, _, err = _run(capsys, "config", "validate")
        assert code == 2
        assert "settlement.sweep_batch_size" in err

    def test_config_file_option(self, tmp_path: Path, capsys):
        path = tmp_path / "agegate.yaml"
        path.write_text("proof:\n  range_bits: 12\n", encoding="utf-8")
        code, out, _ = _run(capsys, "--config", str(path), "config", "get", "proof.range_bits")
        assert code == 0
        assert json.loads(out)["value"] == 12

    def test_schema(self, capsys):
        code, out, _ = _run(capsys, "config", "schema")
        assert code == 0
        assert "proof" in json.loads(out)["properties"]

    def test_no_command_prints_help(self, capsys):
        code, out, _ = _run(capsys)
        assert code == 0
        assert "usage: agegate" in out
