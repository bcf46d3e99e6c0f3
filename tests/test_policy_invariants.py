"""Tests for tools/check_invariants.py — proves shipped policy passes and bad policy fails."""

import json
import shutil
import subprocess
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
CONFIG_DIR = ROOT / "config"
SCRIPT = ROOT / "tools" / "check_invariants.py"


def _run(config_dir: Path) -> subprocess.CompletedProcess:
    return subprocess.run(
        [sys.executable, str(SCRIPT), str(config_dir)],
        capture_output=True, text=True, cwd=str(ROOT),
    )


def _copy_config(tmp_path: Path) -> Path:
    target = tmp_path / "config"
    shutil.copytree(CONFIG_DIR, target)
    return target


class TestPolicyInvariants:
    def test_shipped_config_passes(self) -> None:
        result = _run(CONFIG_DIR)
        assert result.returncode == 0, f"Invariants failed: {result.stdout}"

    def test_combined_fee_rate_too_high(self, tmp_path: Path) -> None:
        config = _copy_config(tmp_path)
        path = config / "fee_params.json"
        fees = json.loads(path.read_text(encoding="utf-8"))
        fees["trade_fees"]["escrow_fee_rate"] = "0.99"
        path.write_text(json.dumps(fees), encoding="utf-8")
        result = _run(config)
        assert result.returncode == 1
        assert "Combined trade fee rate" in result.stdout

    def test_trust_weights_must_sum_to_100(self, tmp_path: Path) -> None:
        config = _copy_config(tmp_path)
        path = config / "trust_params.json"
        trust = json.loads(path.read_text(encoding="utf-8"))
        trust["weights"]["completion_points"] = 50
        path.write_text(json.dumps(trust), encoding="utf-8")
        result = _run(config)
        assert result.returncode == 1
        assert "sum to 100" in result.stdout

    def test_unlock_percent_must_not_decrease(self, tmp_path: Path) -> None:
        config = _copy_config(tmp_path)
        path = config / "escrow_params.json"
        escrow = json.loads(path.read_text(encoding="utf-8"))
        escrow["unlocked_percent"]["verified"] = "40"
        path.write_text(json.dumps(escrow), encoding="utf-8")
        result = _run(config)
        assert result.returncode == 1
        assert "must not decrease" in result.stdout

    def test_missing_files(self, tmp_path: Path) -> None:
        result = _run(tmp_path)
        assert result.returncode == 1
        assert "cannot load" in result.stdout
