"""
Service layer for business logic.

This package contains the draft session that applies user edits to an
acceptance draft and the coordinator that saves it as a single batch.
"""
