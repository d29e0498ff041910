"""Group listing and history endpoints."""
