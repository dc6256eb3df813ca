"""HTTP client helpers shared by handlers that call external services."""
