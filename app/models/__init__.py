# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Response schemas for the API, kept separate from the ORM model in
# app/db/models.py.
# =============================================================================
