"""Stranded funds report.

Lists failed jobs that burned the user's deposit but never paid the user:
either the mint never happened (the funds wait for a mint with the
attestation) or USDC was minted to the relay wallet on the destination chain
and the payout never went out. Jobs whose payout was broadcast but never
confirmed are listed separately; check those on-chain before paying again.

Usage:
    python -m relaybridge.reconcile [--unfinished] [--json]

Options:
    --unfinished  Also list jobs that have not reached a terminal status
    --json        Print the report as JSON

Exit status is 1 when any job needs an operator, so the command can run
from cron.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from relaybridge.chains import format_units, get_chain, parse_units
from relaybridge.ledger.database import close_db, init_db
from relaybridge.ledger.models import BridgeJob
from relaybridge.ledger.store import JobStore

logger = logging.getLogger(__name__)

STAGE_MINTED = "minted_not_paid"
STAGE_BURNED = "burned_not_minted"


def _tx_url(chain_name: str, tx_hash: Optional[str]) -> Optional[str]:
    chain = get_chain(chain_name)
    if chain is None or not tx_hash:
        return None
    return chain.tx_url(tx_hash)


def _job_summary(job: BridgeJob) -> dict:
    return {
        "job_id": job.id,
        "status": job.status,
        "stage": STAGE_MINTED if job.mint_tx_hash else STAGE_BURNED,
        "amount": job.amount,
        "from_chain": job.from_chain,
        "to_chain": job.to_chain,
        "user_dest_address": job.user_dest_address,
        "deposit_tx_hash": job.deposit_tx_hash,
        "burn_tx_hash": job.burn_tx_hash,
        "burn_url": _tx_url(job.from_chain, job.burn_tx_hash),
        "attestation": job.attestation,
        "mint_tx_hash": job.mint_tx_hash,
        "mint_url": _tx_url(job.to_chain, job.mint_tx_hash),
        "payout_tx_hash": job.payout_tx_hash,
        "payout_url": _tx_url(job.to_chain, job.payout_tx_hash),
        "error_message": job.error_message,
        "updated_at": job.updated_at.isoformat() if job.updated_at else None,
    }


def _totals(jobs: list[BridgeJob]) -> dict[str, str]:
    """Sum job amounts per destination chain, exactly in base units."""
    totals: dict[str, int] = {}
    decimals: dict[str, int] = {}
    for job in jobs:
        chain = get_chain(job.to_chain)
        decimals[job.to_chain] = chain.usdc_decimals if chain else 6
        totals[job.to_chain] = totals.get(job.to_chain, 0) + parse_units(
            job.amount, decimals[job.to_chain]
        )
    return {
        chain: format(format_units(total, decimals[chain]).normalize(), "f")
        for chain, total in sorted(totals.items())
    }


async def collect_report(store: JobStore, include_unfinished: bool = False) -> dict:
    """Build the reconciliation report.

    Returns:
        Dict with ``stranded`` jobs, per-chain ``held`` totals (minted to
        the relay), per-chain ``unminted`` totals (burned, mint pending),
        ``unconfirmed_payouts`` and, when requested, ``unfinished`` jobs
    """
    stranded = await store.list_stranded()
    minted = [job for job in stranded if job.mint_tx_hash]
    unminted = [job for job in stranded if not job.mint_tx_hash]

    report = {
        "stranded": [_job_summary(job) for job in stranded],
        "held": _totals(minted),
        "unminted": _totals(unminted),
        "unconfirmed_payouts": [
            _job_summary(job) for job in await store.list_unconfirmed_payouts()
        ],
    }
    if include_unfinished:
        report["unfinished"] = [_job_summary(job) for job in await store.list_unfinished()]
    return report


def needs_attention(report: dict) -> bool:
    """Whether any job in the report needs an operator."""
    return bool(report["stranded"] or report["unconfirmed_payouts"])


def format_report(report: dict) -> str:
    """Render the report for a terminal."""
    lines = []

    stranded = report["stranded"]
    if not stranded:
        lines.append("No stranded jobs.")
    else:
        lines.append(f"{len(stranded)} stranded job(s): bridged but not paid out")
        for job in stranded:
            lines.append(
                f"  {job['job_id']}  {job['amount']} USDC {job['from_chain']} -> {job['to_chain']}"
                f"  to {job['user_dest_address']}  [{job['stage']}]"
            )
            if job["mint_tx_hash"]:
                lines.append(f"      mint: {job['mint_url'] or job['mint_tx_hash']}")
            else:
                lines.append(f"      burn: {job['burn_url'] or job['burn_tx_hash']}")
                lines.append(f"      attestation: {job['attestation'] or '(not fetched)'}")
            lines.append(f"      error: {job['error_message']}")
        if report["held"]:
            lines.append("Held by relay:")
            for chain, total in report["held"].items():
                lines.append(f"  {chain}: {total} USDC")
        if report["unminted"]:
            lines.append("Burned, awaiting mint:")
            for chain, total in report["unminted"].items():
                lines.append(f"  {chain}: {total} USDC")

    unconfirmed = report["unconfirmed_payouts"]
    if unconfirmed:
        lines.append(
            f"{len(unconfirmed)} unconfirmed payout(s): check on-chain before paying again"
        )
        for job in unconfirmed:
            lines.append(
                f"  {job['job_id']}  {job['amount']} USDC on {job['to_chain']}"
                f"  to {job['user_dest_address']}"
            )
            lines.append(f"      payout: {job['payout_url'] or job['payout_tx_hash']}")

    if "unfinished" in report:
        lines.append(f"{len(report['unfinished'])} unfinished job(s)")
        for job in report["unfinished"]:
            lines.append(f"  {job['job_id']}  {job['status']}  {job['amount']} USDC")

    return "\n".join(lines)


async def run(include_unfinished: bool, as_json: bool) -> int:
    await init_db()
    try:
        report = await collect_report(JobStore(), include_unfinished=include_unfinished)
    finally:
        await close_db()

    if as_json:
        print(json.dumps(report, indent=2))
    else:
        print(format_report(report))
    return 1 if needs_attention(report) else 0


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Report bridge jobs holding relay funds")
    parser.add_argument(
        "--unfinished",
        action="store_true",
        help="Also list jobs that have not reached a terminal status",
    )
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    return asyncio.run(run(args.unfinished, args.json))


if __name__ == "__main__":
    sys.exit(main())
