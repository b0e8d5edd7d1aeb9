"""
Test CLI commands end to end.

These tests run the installed ``mindbridge-privacy`` entry point (or the
module) in a subprocess against a temporary artifacts directory.
"""
import json
import os
import shutil
import subprocess
import sys

import pytest


def get_cli_command():
    """Get the CLI command to run."""
    cli_path = shutil.which("mindbridge-privacy")
    if cli_path:
        return [cli_path]
    return [sys.executable, "-m", "mindbridge_privacy.cli"]


def run_cli(*args, timeout=180, check=True, env=None):
    """
    Helper function to run CLI commands.

    Args:
        *args: CLI arguments
        timeout: Command timeout in seconds
        check: Whether to check return code
        env: Extra environment variables

    Returns:
        subprocess.CompletedProcess
    """
    cmd = get_cli_command() + list(args)
    full_env = dict(os.environ)
    full_env.pop("MINDBRIDGE_SETTINGS", None)
    full_env.update(env or {})
    return subprocess.run(
        cmd,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=check,
        env=full_env,
    )


@pytest.fixture(scope="module")
def artifacts_dir(tmp_path_factory):
    path = tmp_path_factory.mktemp("artifacts")
    run_cli("--artifacts-dir", str(path), "setup")
    return path


def _write_json(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def test_cli_version():
    """Test that the version option works."""
    result = run_cli("--version")
    assert result.returncode == 0
    assert "0.1.0" in result.stdout


def test_cli_help():
    """Test that help lists every command."""
    result = run_cli("--help")
    assert result.returncode == 0
    for command in ("setup", "circuits", "prove", "verify", "aggregate"):
        assert command in result.stdout


def test_cli_setup_writes_artifacts(artifacts_dir):
    assert (artifacts_dir / "wellness_milestone" / "v1" / "verification_key.json").is_file()
    assert (artifacts_dir / "peer_support_eligibility" / "v1" / "proving_key.cbor").is_file()


def test_cli_circuits(artifacts_dir):
    result = run_cli("--artifacts-dir", str(artifacts_dir), "circuits")
    assert "✓ peer_support_eligibility" in result.stdout
    assert "✓ wellness_milestone" in result.stdout


def test_cli_circuits_missing_artifacts(tmp_path):
    result = run_cli("--artifacts-dir", str(tmp_path / "none"), "circuits")
    assert "✗ wellness_milestone" in result.stdout


def test_cli_prove_and_verify(artifacts_dir, tmp_path, peer_support_inputs):
    private, public = peer_support_inputs
    proof_path = tmp_path / "proof.json"

    result = run_cli(
        "--artifacts-dir", str(artifacts_dir),
        "prove", "peer_support_eligibility",
        "--private", _write_json(tmp_path / "private.json", private),
        "--public", _write_json(tmp_path / "public.json", public),
        "--output", str(proof_path),
    )
    assert "Proof saved" in result.stdout

    document = json.loads(proof_path.read_text())
    assert document["circuitId"] == "peer_support_eligibility"
    assert document["publicSignals"][:2] == ["1", "6"]
    assert str(private["supporter_secret"]) not in result.stdout + result.stderr

    result = run_cli("--artifacts-dir", str(artifacts_dir), "verify", str(proof_path))
    assert "proof verifies" in result.stdout

    document["publicSignals"][3] = "99"
    tampered = _write_json(tmp_path / "tampered.json", document)
    result = run_cli("--artifacts-dir", str(artifacts_dir), "verify", tampered, check=False)
    assert result.returncode == 1
    assert "does not verify" in result.stderr


def test_cli_prove_invalid_input(artifacts_dir, tmp_path, peer_support_inputs):
    private, public = peer_support_inputs
    private["supporter_wellness"] = 500
    result = run_cli(
        "--artifacts-dir", str(artifacts_dir),
        "prove", "peer_support_eligibility",
        "--private", _write_json(tmp_path / "private.json", private),
        "--public", _write_json(tmp_path / "public.json", public),
        check=False,
    )
    assert result.returncode == 1
    assert "ValidationError" in result.stderr
    assert "supporter_wellness" in result.stderr


def test_cli_aggregate(tmp_path):
    records = [
        {"user_id": "a", "metrics": {"mood": 60, "sessions": 2}},
        {"user_id": "b", "metrics": {"mood": 80, "sessions": 3}},
        {"user_id": "c", "metrics": {"mood": 100, "sessions": 1}},
    ]
    result = run_cli(
        "aggregate", _write_json(tmp_path / "metrics.json", records),
        "--field", "mood",
        "--field", "sessions=count",
        "--epsilon", "0.5",
        env={"MINDBRIDGE_DECRYPTION_TABLE_BITS": "8"},
    )
    assert "mood" in result.stdout
    assert "sessions" in result.stdout
    assert "Remaining budget for cli: 0.5" in result.stdout


def test_cli_aggregate_over_budget(tmp_path):
    records = [{"user_id": "a", "metrics": {"mood": 1}}]
    result = run_cli(
        "aggregate", _write_json(tmp_path / "metrics.json", records),
        "--epsilon", "2.0",
        env={"MINDBRIDGE_DECRYPTION_TABLE_BITS": "8"},
        check=False,
    )
    assert result.returncode == 1
    assert "BudgetExceededError" in result.stderr


def test_cli_settings_file(tmp_path):
    settings = tmp_path / "settings.yaml"
    settings.write_text("epsilon_cap: 3.0\ndecryption_table_bits: 8\n", encoding="utf-8")
    records = [{"user_id": "a", "metrics": {"mood": 1}}]
    result = run_cli(
        "--settings", str(settings),
        "aggregate", _write_json(tmp_path / "metrics.json", records),
        "--epsilon", "2.0",
    )
    assert "Remaining budget for cli: 1.0" in result.stdout


def test_cli_rejects_unknown_setting(tmp_path):
    settings = tmp_path / "settings.yaml"
    settings.write_text("colour: blue\n", encoding="utf-8")
    result = run_cli("--settings", str(settings), "circuits", check=False)
    assert result.returncode == 2
    assert "unknown settings" in result.stderr


def test_cli_rejects_unknown_log_level():
    result = run_cli("--log-level", "LOUD", "circuits", check=False)
    assert result.returncode == 2
    assert "unknown log level" in result.stderr
    assert "Traceback" not in result.stderr


def test_cli_aggregate_rejects_non_object_record(tmp_path):
    records = [{"user_id": "a", "metrics": {"mood": 1}}, 42]
    result = run_cli(
        "aggregate", _write_json(tmp_path / "metrics.json", records),
        env={"MINDBRIDGE_DECRYPTION_TABLE_BITS": "8"},
        check=False,
    )
    assert result.returncode == 2
    assert "metrics record" in result.stderr
    assert "Traceback" not in result.stderr
