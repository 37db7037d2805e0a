"""
Workers for background earnings processing.

- EscrowRelease: Moves matured earnings from escrow to available

Usage:
    from earnings.workers import release_matured_earnings, release_single_earning

    release_matured_earnings.delay()
"""

from earnings.workers.escrow_release import (
    release_matured_earnings,
    release_single_earning,
)

__all__ = [
    "release_matured_earnings",
    "release_single_earning",
]
