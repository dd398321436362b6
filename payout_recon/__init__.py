"""
Payout Reconciliation Package.

FastAPI service that reconciles the payout a lead source records for each call
against the payout and revenue the routing platform recorded, and corrects
the routing platform where the two disagree.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, database, and dependencies
    - models: Pydantic schemas, enums and result types
    - services: Normalization, matching, leg resolution, corrections, storage
    - jobs: Slack run digest
    - sql: Parameterized SQL queries
"""

__version__ = "1.0.0"
