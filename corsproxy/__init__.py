"""CORS proxy with target allowlist and private network screening."""
