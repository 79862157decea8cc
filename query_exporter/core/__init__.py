"""Core infrastructure: lifecycle, HTTP server and runner."""
