"""
Tests for the snapshot command line tool.
"""

import base64

import pytest

from claim_api import snapshot_cli
from claim_api.services import payload_encoder
from claim_api.services.commitment_store import CommitmentStore
from conftest import ENTRY_A, OWNER_A, OWNER_B, make_owner


@pytest.fixture
def claims_csv(tmp_path):
    path = tmp_path / "claims.csv"
    lines = ["address,amount,start_from,expire_at"]
    lines.append(f"{OWNER_A.to_raw()},{ENTRY_A.amount},{ENTRY_A.start_from},{ENTRY_A.expire_at}")
    for i in range(1, 6):
        lines.append(f"{make_owner(i).to_friendly()},{i * 100},1700000000,1800000000")
    path.write_text("\n".join(lines) + "\n")
    return path


class TestReadClaims:
    """Tests for CSV parsing."""

    def test_read(self, claims_csv) -> None:
        """Test parsing a claims CSV."""
        entries = snapshot_cli.read_claims_csv(claims_csv)
        assert len(entries) == 6
        assert entries[OWNER_A] == ENTRY_A

    def test_missing_column(self, tmp_path) -> None:
        """Test header validation."""
        path = tmp_path / "claims.csv"
        path.write_text("address,amount\n")
        with pytest.raises(ValueError, match="missing columns"):
            snapshot_cli.read_claims_csv(path)

    def test_duplicate_owner(self, tmp_path) -> None:
        """Test that an owner may appear once."""
        path = tmp_path / "claims.csv"
        row = f"{OWNER_A.to_raw()},1,0,10"
        path.write_text(f"address,amount,start_from,expire_at\n{row}\n{row}\n")
        with pytest.raises(ValueError, match="duplicate"):
            snapshot_cli.read_claims_csv(path)

    def test_invalid_window(self, tmp_path) -> None:
        """Test that expire_at must follow start_from."""
        path = tmp_path / "claims.csv"
        path.write_text(f"address,amount,start_from,expire_at\n{OWNER_A.to_raw()},1,10,10\n")
        with pytest.raises(ValueError, match="Line 2"):
            snapshot_cli.read_claims_csv(path)


class TestCommands:
    """Tests for build, inspect and proof commands."""

    def test_build_and_inspect(self, tmp_path, claims_csv, capsys) -> None:
        """Test building a snapshot and reading it back."""
        out = tmp_path / "airdropData.boc"

        assert snapshot_cli.main(["build", str(claims_csv), "--out", str(out)]) == 0
        store = CommitmentStore.from_file(out)
        assert store.entry_count == 6
        assert store.root().hex() in capsys.readouterr().out

        assert snapshot_cli.main(["inspect", str(out), "--list"]) == 0
        listed = capsys.readouterr().out
        assert f"{OWNER_A.to_raw()},1000000000,1673808578,1721080197" in listed

    def test_proof(self, tmp_path, claims_csv, capsys) -> None:
        """Test printing a claim payload."""
        out = tmp_path / "airdropData.boc"
        snapshot_cli.main(["build", str(claims_csv), "--out", str(out)])
        capsys.readouterr()

        assert snapshot_cli.main(["proof", str(out), OWNER_A.to_raw()]) == 0
        payload = base64.b64decode(capsys.readouterr().out.strip().splitlines()[-1])
        assert payload_encoder.decode(payload).compute_root() == CommitmentStore.from_file(out).root()

        assert snapshot_cli.main(["proof", str(out), OWNER_B.to_raw()]) == 1

    def test_errors_return_nonzero(self, tmp_path) -> None:
        """Test that failures exit with status 1."""
        assert snapshot_cli.main(["inspect", str(tmp_path / "missing.boc")]) == 1
        assert snapshot_cli.main(["build", str(tmp_path / "missing.csv")]) == 1
