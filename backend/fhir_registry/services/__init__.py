"""In-process services."""
