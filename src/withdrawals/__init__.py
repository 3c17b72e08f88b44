"""
Withdrawals module: reconciliation of withdrawal request lifecycles.
"""

from .reconciler import WithdrawalReconciler, WithdrawalEvent, merge_request

__all__ = [
    "WithdrawalReconciler",
    "WithdrawalEvent",
    "merge_request",
]
