"""
Tests for accounts app.

- test_utils.py: username normalization, format checks, search terms
- test_models.py: User save path and username policy
- test_api.py: register, me, public profile, community directory
"""
