"""ARQ background worker."""
