"""Utility modules for the fulfillment kernel."""

from fulfillment_kernel.utils.retry import TRANSIENT_ERRORS, run_with_retry

__all__ = [
    "TRANSIENT_ERRORS",
    "run_with_retry",
]
