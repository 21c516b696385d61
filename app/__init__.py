"""
HTTP layer: FastAPI routes for editing and saving acceptance drafts.
"""
