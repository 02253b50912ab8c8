"""
Water Quality Pipeline - Test Suite

Unit and integration tests for the reconciliation pipeline.

Test Organization:
- test_models.py: Pydantic model validation and conversion
- test_config.py: Settings loading and environment overrides
- test_storage.py: SQLite and in-memory stores, including the CAS claim
- test_buffer.py / test_reconciler.py / test_janitor.py: Ingestion stages
- test_scorer.py: Quality scoring, violations and recommendations
- test_alerts.py: Alert dispatch, notification queue and gateways
- test_concurrency.py: Concurrent claims across threads
- test_pipeline.py: External operations end to end
- test_cli.py: Command-line interface

Fixtures are in tests/fixtures/:
- factories.py: ReadingFactory for generating test data
- doubles.py: Fake clock, recording gateway and failing stores

Run tests:
    $ pytest tests/ -v
    $ pytest tests/ -m "not concurrency"
"""
