"""Monitoring: logging setup."""
