"""Logging and TLS helpers."""
