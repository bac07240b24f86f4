"""Shared utilities: logging configuration."""
