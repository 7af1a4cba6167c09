"""
Tests for entanglements app.

Test structure:
- test_status.py: viewer-relative status projection (no database)
- test_models.py: Connection constraints and pair ordering
- test_tracker.py: EntanglementTracker state transitions and failure handling
- test_api.py: connection and entanglement endpoints
"""
