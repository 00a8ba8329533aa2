# Vulture whitelist for false positives
# These are intentionally unused but required by Python protocols/APIs


# FastAPI lifespan handlers receive the application
def _lifespan_whitelist(app):
    _ = app


# Async context manager protocol requires these parameters (RetrievalTracker)
async def _context_manager_whitelist(exc_type, exc_val, exc_tb):
    _ = exc_type
    _ = exc_val
    _ = exc_tb


# Protocol method parameters in stores and tracers
def _protocol_whitelist(content_type, fields, event):
    _ = content_type
    _ = fields
    _ = event
