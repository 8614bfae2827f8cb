"""Core logic: averages, exam list state, CSV import, and plan rules."""
