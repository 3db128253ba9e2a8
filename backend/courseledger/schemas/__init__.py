"""Request/response schemas for the admin API."""
