"""Vector math, I/O and numeric helpers."""
