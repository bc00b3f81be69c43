"""
Mintless Claim API - Snapshot Tool

Builds and inspects airdrop snapshots offline.

    claim-api-snapshot build claims.csv --out airdropData.boc
    claim-api-snapshot inspect airdropData.boc
    claim-api-snapshot proof airdropData.boc 0:1234...

The CSV has a header row ``address,amount,start_from,expire_at``.
"""

import argparse
import base64
import csv
import sys
from pathlib import Path

import structlog

from claim_api.core.errors import ClaimAPIError
from claim_api.core.logging import setup_logging
from claim_api.crypto.address import Address, AddressError
from claim_api.services import payload_encoder
from claim_api.services.commitment_store import ClaimEntry, CommitmentStore, build_snapshot
from claim_api.services.proof_generator import ProofGenerator

logger = structlog.get_logger(__name__)

CSV_FIELDS = ("address", "amount", "start_from", "expire_at")


def read_claims_csv(path: Path) -> dict[Address, ClaimEntry]:
    """
    Read claim entries from CSV.

    Raises:
        ValueError: On a missing column, malformed row, or duplicate owner
    """
    entries: dict[Address, ClaimEntry] = {}
    with path.open(newline="") as f:
        reader = csv.DictReader(f)
        missing = [name for name in CSV_FIELDS if name not in (reader.fieldnames or [])]
        if missing:
            raise ValueError(f"CSV is missing columns: {', '.join(missing)}")

        for line, row in enumerate(reader, start=2):
            try:
                owner = Address.parse(row["address"].strip())
                entry = ClaimEntry(
                    amount=int(row["amount"]),
                    start_from=int(row["start_from"]),
                    expire_at=int(row["expire_at"]),
                )
                entry.validate()
            except (AddressError, ValueError) as e:
                raise ValueError(f"Line {line}: {e}") from e
            if owner in entries:
                raise ValueError(f"Line {line}: duplicate address {owner.to_raw()}")
            entries[owner] = entry
    return entries


def cmd_build(args: argparse.Namespace) -> int:
    entries = read_claims_csv(Path(args.csv))
    snapshot = build_snapshot(entries)
    Path(args.out).write_bytes(snapshot)

    store = CommitmentStore.load(snapshot, verify_root=False)
    print(f"Entries:     {store.entry_count}")
    print(f"Merkle root: {store.root().hex()}")
    print(f"Snapshot:    {args.out} ({len(snapshot)} bytes)")
    return 0


def cmd_inspect(args: argparse.Namespace) -> int:
    store = CommitmentStore.from_file(args.snapshot, verify_root=not args.no_verify)
    print(f"Entries:     {store.entry_count}")
    print(f"Merkle root: {store.root().hex()}")
    print(f"Root (int):  {store.root_int()}")
    if args.list:
        for owner in store.owners():
            entry = store.get(owner)
            print(f"{owner.to_raw()},{entry.amount},{entry.start_from},{entry.expire_at}")
    return 0


def cmd_proof(args: argparse.Namespace) -> int:
    store = CommitmentStore.from_file(args.snapshot)
    owner = Address.parse(args.address)
    proof = ProofGenerator(store).prove_for(owner)
    if proof is None:
        print(f"{owner.to_raw()} is not in the snapshot", file=sys.stderr)
        return 1
    print(base64.b64encode(payload_encoder.encode(proof)).decode("ascii"))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="claim-api-snapshot",
        description="Build and inspect mintless airdrop snapshots",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    p = sub.add_parser("build", help="build a snapshot BoC from a claims CSV")
    p.add_argument("csv", help="CSV with address,amount,start_from,expire_at")
    p.add_argument("--out", default="airdropData.boc", help="output snapshot path")
    p.set_defaults(func=cmd_build)

    p = sub.add_parser("inspect", help="print root and entry count of a snapshot")
    p.add_argument("snapshot")
    p.add_argument("--list", action="store_true", help="also print every entry as CSV")
    p.add_argument("--no-verify", action="store_true", help="skip root recomputation")
    p.set_defaults(func=cmd_inspect)

    p = sub.add_parser("proof", help="print the base64 claim payload for an owner")
    p.add_argument("snapshot")
    p.add_argument("address")
    p.set_defaults(func=cmd_proof)

    return parser


def main(argv: list[str] | None = None) -> int:
    setup_logging(stream=sys.stderr)
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except (ClaimAPIError, AddressError, ValueError, OSError) as e:
        logger.error("Snapshot command failed", command=args.cmd, error=str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
