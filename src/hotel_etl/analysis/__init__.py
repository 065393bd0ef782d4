"""Data profiling over raw booking records."""
