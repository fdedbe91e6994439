"""Append-only lifecycle journal for rebalances, transfers and risk blocks."""

from __future__ import annotations

from typing import List, Optional

from yield_intel.config import settings
from yield_intel.db.connection import get_connection
from yield_intel.models.enums import RebalanceStatus
from yield_intel.models.rebalance import RebalanceOutcome
from yield_intel.models.transfer import TransferRecord


class LifecycleJournal:
    """Record state transitions into the *_events tables.

    The in-memory ledgers stay authoritative; the journal is history only,
    rows are never updated or deleted.
    """

    def __init__(
        self, database_url: Optional[str] = None, enabled: Optional[bool] = None
    ) -> None:
        self.database_url = database_url
        self.enabled = settings.journal_enabled if enabled is None else enabled

    def record_rebalance(
        self,
        outcome: RebalanceOutcome,
        from_status: Optional[RebalanceStatus],
        message: str = "",
    ) -> None:
        if not self.enabled:
            return
        from_value = from_status.value if from_status else None
        with get_connection(self.database_url) as conn:
            conn.execute(
                """
                INSERT INTO rebalance_events (
                    request_id, account, from_status, to_status, amount,
                    fees_paid, tx_reference, message, timestamp
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    outcome.request_id,
                    outcome.account,
                    from_value,
                    outcome.status.value,
                    outcome.amount_executed,
                    outcome.fees_paid,
                    outcome.tx_reference,
                    message or outcome.error,
                    outcome.updated_at,
                ),
            )
            conn.commit()

    def record_transfer(self, record: TransferRecord, timestamp: int) -> None:
        if not self.enabled:
            return
        with get_connection(self.database_url) as conn:
            conn.execute(
                """
                INSERT INTO transfer_events (
                    transfer_id, sender, recipient, source_domain,
                    destination_domain, amount, fee, fast, status, timestamp
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.transfer_id,
                    record.sender,
                    record.recipient,
                    record.source_domain,
                    record.destination_domain,
                    record.amount,
                    record.fee,
                    int(record.fast),
                    record.status.value,
                    timestamp,
                ),
            )
            conn.commit()

    def record_risk_block(
        self,
        account: str,
        rule_name: str,
        reason: str,
        timestamp: int,
        request_id: Optional[str] = None,
    ) -> None:
        if not self.enabled:
            return
        with get_connection(self.database_url) as conn:
            conn.execute(
                """
                INSERT INTO risk_events (account, request_id, rule, level, details, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (account, request_id, rule_name, "block", reason, timestamp),
            )
            conn.commit()

    def rebalance_history(self, request_id: str) -> List[dict]:
        with get_connection(self.database_url) as conn:
            rows = conn.execute(
                """
                SELECT request_id, account, from_status, to_status, amount,
                       fees_paid, tx_reference, message, timestamp
                FROM rebalance_events
                WHERE request_id = ?
                ORDER BY id ASC
                """,
                (request_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    def transfer_history(self, transfer_id: str) -> List[dict]:
        with get_connection(self.database_url) as conn:
            rows = conn.execute(
                """
                SELECT transfer_id, status, amount, fee, fast, timestamp
                FROM transfer_events
                WHERE transfer_id = ?
                ORDER BY id ASC
                """,
                (transfer_id,),
            ).fetchall()
        return [dict(row) for row in rows]

    def risk_blocks(self, account: str) -> List[dict]:
        with get_connection(self.database_url) as conn:
            rows = conn.execute(
                """
                SELECT account, request_id, rule, level, details, timestamp
                FROM risk_events
                WHERE account = ?
                ORDER BY id ASC
                """,
                (account,),
            ).fetchall()
        return [dict(row) for row in rows]
