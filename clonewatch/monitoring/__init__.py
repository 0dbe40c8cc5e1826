"""Health and metrics endpoint."""
