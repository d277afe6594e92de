"""Persistence service access for daygrid."""

from daygrid.client.persistence import TimetableClient
from daygrid.client.reconciliation import ReconciliationAdapter

__all__ = ["TimetableClient", "ReconciliationAdapter"]
