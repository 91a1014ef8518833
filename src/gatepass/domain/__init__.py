"""Domain records and shared validation."""
