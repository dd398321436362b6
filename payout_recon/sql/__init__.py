"""
SQL Query Module for the payout reconciliation service.

Provides the parameterized statements used by services/store.py, keeping
data access text out of the business logic.

Example usage:
    from payout_recon.sql import SELECT_CALL_ID_BY_KEY

    row_id = await conn.fetchval(SELECT_CALL_ID_BY_KEY, caller_id, date_of_call, category)
"""

from payout_recon.sql.reconciliation_queries import (
    SCHEMA_STATEMENTS,
    SELECT_CALL_ID_BY_KEY,
    UPSERT_CALL_RECORD,
    UPDATE_CALL_RECORD_TIMESTAMP,
    UPDATE_CALL_RECORD,
    CAPTURE_ORIGINAL_AMOUNTS,
    MARK_MATCHED,
    MARK_UNMATCHED,
    SELECT_CALL_RECORDS_IN_RANGE,
    SELECT_RECONCILED_ROWS,
    UPSERT_ROUTING_LEG,
    SELECT_ROUTING_LEGS_IN_RANGE,
)


__all__ = [
    "SCHEMA_STATEMENTS",
    "SELECT_CALL_ID_BY_KEY",
    "UPSERT_CALL_RECORD",
    "UPDATE_CALL_RECORD_TIMESTAMP",
    "UPDATE_CALL_RECORD",
    "CAPTURE_ORIGINAL_AMOUNTS",
    "MARK_MATCHED",
    "MARK_UNMATCHED",
    "SELECT_CALL_RECORDS_IN_RANGE",
    "SELECT_RECONCILED_ROWS",
    "UPSERT_ROUTING_LEG",
    "SELECT_ROUTING_LEGS_IN_RANGE",
]
