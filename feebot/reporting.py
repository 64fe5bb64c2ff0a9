"""
Text summaries of engine activity for logs.
"""

from datetime import datetime
from typing import Optional

from feebot.solana.models import EngineStats


def format_uptime(started_at: datetime, now: Optional[datetime] = None) -> str:
    seconds = int(((now or datetime.now()) - started_at).total_seconds())
    hours, remainder = divmod(max(0, seconds), 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours}h {minutes}m {seconds}s"


def generate_summary(stats: EngineStats, title: str = "SUMMARY", now: Optional[datetime] = None) -> str:
    """
    Summary of collected and distributed fees.

    Args:
        stats: Engine statistics
        title: Heading, e.g. "HOURLY SUMMARY" or "FINAL SUMMARY"
        now: Reference time for the uptime

    Returns:
        Multi-line report
    """
    fees = stats.fees
    settlements = fees.settlement_history
    failed_cycles = sum(1 for record in settlements if not record.success)

    lines = [
        f"=== {title} ===",
        f"Uptime: {format_uptime(stats.started_at, now)}",
        f"Fees collected: {fees.total_collected:.4f} SOL in {fees.claim_count} claims",
        f"Distributions: {len(settlements)} ({failed_cycles} with errors)",
        f"Volume: {stats.volume.total_volume:.4f} SOL in {stats.volume.successful_trades}/{stats.volume.total_trades} trades",
        f"Burned: {stats.burn.total_burned:,} tokens for {stats.burn.total_sol_spent:.4f} SOL",
        f"Airdropped: {stats.airdrop.total_distributed:.4f} SOL to {len(stats.airdrop.unique_recipients)} unique holders",
        f"Treasury: {stats.treasury.total_transferred:.4f} SOL in {stats.treasury.transfer_count} transfers",
    ]

    if settlements and settlements[-1].errors:
        lines.append("Last cycle errors:")
        lines.extend(f"  {error}" for error in settlements[-1].errors)

    return "\n".join(lines)
