"""HTTP client for the plan store."""
