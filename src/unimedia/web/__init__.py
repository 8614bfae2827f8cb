"""Web API for the UniMedia plan store."""
