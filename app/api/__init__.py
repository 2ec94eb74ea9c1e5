# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
#   - documents.py: health, document status, submission, stale cleanup
#   - deps.py: access to the record store and worker pool on app.state
# =============================================================================
