"""Identity creation endpoints."""
