# =============================================================================
# Database Package
# =============================================================================
# Async SQLAlchemy engine, the Document ORM model and its status state
# machine, and the pluggable record store (SQLAlchemy or in-memory).
# =============================================================================
