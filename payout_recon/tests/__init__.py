'''
Payout Reconciliation Test Suite

Test Modules:
-------------
- test_normalizer.py: phone, timestamp and category normalization
- test_matcher.py: match scoring and candidate ranking
- test_routing_client.py: routing platform HTTP adapter (httpx.MockTransport)
- test_leg_resolver.py: payout / revenue leg resolution across reroutes
- test_correction.py: payment override and void requests
- test_store.py: lead row and routing leg persistence
- test_ingestion.py: lead-source and routing platform CSV parsing
- test_reconciliation.py: batch driver
- test_jobs.py: Slack run digest
- test_api.py: FastAPI endpoints

Running Tests:
--------------
    pip install -e ".[test]"
    pytest -v

See conftest.py for shared fixtures.
'''

__all__ = []
