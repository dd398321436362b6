"""
Parameterized SQL for the reconciliation store.

Tables:
    lead_call_records   one row per (caller_id, date_of_call, category)
    routing_call_legs   one row per leg_id

Timestamps are stored as canonical text (YYYY-MM-DDTHH:MM:SS) exactly as the
lead source delivers them, so the uniqueness key compares the same string the
feed sends. Date range filters compare the leading YYYY-MM-DD.

original_payout, original_revenue and linked_routing_call_id form the audit
baseline. None of the upsert statements below touch them. They are written
only by CAPTURE_ORIGINAL_AMOUNTS, whose WHERE clause enforces write-once.
"""

from typing import List


# =============================================================================
# SCHEMA
# =============================================================================

SCHEMA_STATEMENTS: List[str] = [
    """
    CREATE TABLE IF NOT EXISTS lead_call_records (
        id SERIAL PRIMARY KEY,
        caller_id VARCHAR(50) NOT NULL,
        date_of_call VARCHAR(50) NOT NULL,
        category VARCHAR(20) NOT NULL DEFAULT 'STATIC',
        payout DECIMAL(10, 2) NOT NULL DEFAULT 0,
        original_payout DECIMAL(10, 2) DEFAULT NULL,
        original_revenue DECIMAL(10, 2) DEFAULT NULL,
        linked_routing_call_id VARCHAR(100) DEFAULT NULL,
        unmatched BOOLEAN NOT NULL DEFAULT FALSE,
        campaign_phone VARCHAR(50),
        city_state VARCHAR(255),
        zip_code VARCHAR(20),
        total_duration INTEGER,
        assessment TEXT,
        classification TEXT,
        created_at TIMESTAMP NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP NOT NULL DEFAULT NOW(),
        CONSTRAINT lead_call_records_key UNIQUE (caller_id, date_of_call, category)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS routing_call_legs (
        id SERIAL PRIMARY KEY,
        leg_id VARCHAR(100) NOT NULL UNIQUE,
        call_date_time VARCHAR(50),
        caller_id VARCHAR(50),
        caller_id_e164 VARCHAR(50),
        payout_amount DECIMAL(10, 2) NOT NULL DEFAULT 0,
        revenue_amount DECIMAL(10, 2) NOT NULL DEFAULT 0,
        connected BOOLEAN NOT NULL DEFAULT FALSE,
        call_duration INTEGER NOT NULL DEFAULT 0,
        rerouted_from_leg_id VARCHAR(100),
        root_leg_id VARCHAR(100),
        target_id VARCHAR(100),
        target_name VARCHAR(255),
        campaign_name VARCHAR(255),
        publisher_name VARCHAR(255),
        created_at TIMESTAMP NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP NOT NULL DEFAULT NOW()
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_lead_call_records_date ON lead_call_records (LEFT(date_of_call, 10))",
    "CREATE INDEX IF NOT EXISTS idx_routing_call_legs_e164 ON routing_call_legs (caller_id_e164)",
]


# =============================================================================
# LEAD CALL RECORDS
# =============================================================================

SELECT_CALL_ID_BY_KEY = """
    SELECT id
    FROM lead_call_records
    WHERE caller_id = $1 AND date_of_call = $2 AND category = $3
"""

# $1..$3 key, $4 payout, $5..$10 descriptive fields
UPSERT_CALL_RECORD = """
    INSERT INTO lead_call_records (
        caller_id, date_of_call, category, payout,
        campaign_phone, city_state, zip_code, total_duration,
        assessment, classification,
        created_at, updated_at
    ) VALUES (
        $1, $2, $3, $4,
        $5, $6, $7, $8,
        $9, $10,
        NOW(), NOW()
    )
    ON CONFLICT (caller_id, date_of_call, category)
    DO UPDATE SET
        payout = EXCLUDED.payout,
        campaign_phone = COALESCE(EXCLUDED.campaign_phone, lead_call_records.campaign_phone),
        city_state = COALESCE(EXCLUDED.city_state, lead_call_records.city_state),
        zip_code = COALESCE(EXCLUDED.zip_code, lead_call_records.zip_code),
        total_duration = COALESCE(EXCLUDED.total_duration, lead_call_records.total_duration),
        assessment = COALESCE(EXCLUDED.assessment, lead_call_records.assessment),
        classification = COALESCE(EXCLUDED.classification, lead_call_records.classification),
        updated_at = NOW()
    RETURNING id, (xmax = 0) AS inserted
"""

# $1 id, $2 new date_of_call, $3 payout, $4..$9 descriptive fields
UPDATE_CALL_RECORD_TIMESTAMP = """
    UPDATE lead_call_records
    SET date_of_call = $2,
        payout = $3,
        campaign_phone = COALESCE($4, campaign_phone),
        city_state = COALESCE($5, city_state),
        zip_code = COALESCE($6, zip_code),
        total_duration = COALESCE($7, total_duration),
        assessment = COALESCE($8, assessment),
        classification = COALESCE($9, classification),
        updated_at = NOW()
    WHERE id = $1
"""

# $1 id, $2 payout, $3..$8 descriptive fields
UPDATE_CALL_RECORD = """
    UPDATE lead_call_records
    SET payout = $2,
        campaign_phone = COALESCE($3, campaign_phone),
        city_state = COALESCE($4, city_state),
        zip_code = COALESCE($5, zip_code),
        total_duration = COALESCE($6, total_duration),
        assessment = COALESCE($7, assessment),
        classification = COALESCE($8, classification),
        updated_at = NOW()
    WHERE id = $1
"""

CAPTURE_ORIGINAL_AMOUNTS = """
    UPDATE lead_call_records
    SET original_payout = $2,
        original_revenue = $3,
        linked_routing_call_id = COALESCE(linked_routing_call_id, $4),
        updated_at = NOW()
    WHERE id = $1
      AND (original_payout IS NULL OR original_payout = 0)
      AND (original_revenue IS NULL OR original_revenue = 0)
    RETURNING id
"""

MARK_MATCHED = """
    UPDATE lead_call_records
    SET unmatched = FALSE,
        linked_routing_call_id = COALESCE(linked_routing_call_id, $2),
        updated_at = NOW()
    WHERE id = $1
"""

MARK_UNMATCHED = """
    UPDATE lead_call_records
    SET unmatched = TRUE,
        updated_at = NOW()
    WHERE id = $1
"""

_CALL_RECORD_COLUMNS = """
        id, caller_id, date_of_call, category, payout,
        original_payout, original_revenue, linked_routing_call_id, unmatched,
        campaign_phone, city_state, zip_code, total_duration,
        assessment, classification
"""

SELECT_CALL_RECORDS_IN_RANGE = f"""
    SELECT {_CALL_RECORD_COLUMNS}
    FROM lead_call_records
    WHERE LEFT(date_of_call, 10) BETWEEN $1 AND $2
      AND ($3::text IS NULL OR category = $3)
    ORDER BY date_of_call, id
"""

SELECT_RECONCILED_ROWS = f"""
    SELECT {_CALL_RECORD_COLUMNS}
    FROM lead_call_records
    WHERE LEFT(date_of_call, 10) BETWEEN $1 AND $2
      AND ($3::text IS NULL OR category = $3)
      AND ($4::boolean IS NULL OR unmatched = $4)
    ORDER BY date_of_call DESC, id DESC
"""


# =============================================================================
# ROUTING CALL LEGS
# =============================================================================

UPSERT_ROUTING_LEG = """
    INSERT INTO routing_call_legs (
        leg_id, call_date_time, caller_id, caller_id_e164,
        payout_amount, revenue_amount, connected, call_duration,
        rerouted_from_leg_id, root_leg_id,
        target_id, target_name, campaign_name, publisher_name,
        created_at, updated_at
    ) VALUES (
        $1, $2, $3, $4,
        $5, $6, $7, $8,
        $9, $10,
        $11, $12, $13, $14,
        NOW(), NOW()
    )
    ON CONFLICT (leg_id)
    DO UPDATE SET
        call_date_time = EXCLUDED.call_date_time,
        caller_id = EXCLUDED.caller_id,
        caller_id_e164 = EXCLUDED.caller_id_e164,
        payout_amount = EXCLUDED.payout_amount,
        revenue_amount = EXCLUDED.revenue_amount,
        connected = EXCLUDED.connected,
        call_duration = EXCLUDED.call_duration,
        rerouted_from_leg_id = EXCLUDED.rerouted_from_leg_id,
        root_leg_id = EXCLUDED.root_leg_id,
        target_id = EXCLUDED.target_id,
        target_name = EXCLUDED.target_name,
        campaign_name = EXCLUDED.campaign_name,
        publisher_name = EXCLUDED.publisher_name,
        updated_at = NOW()
    RETURNING (xmax = 0) AS inserted
"""

SELECT_ROUTING_LEGS_IN_RANGE = """
    SELECT
        leg_id, call_date_time, caller_id, caller_id_e164,
        payout_amount, revenue_amount, connected, call_duration,
        rerouted_from_leg_id, root_leg_id,
        target_id, target_name, campaign_name, publisher_name
    FROM routing_call_legs
    WHERE LEFT(call_date_time, 10) BETWEEN $1 AND $2
    ORDER BY call_date_time, leg_id
"""
