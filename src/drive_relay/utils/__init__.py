"""Shared constants and error types for Drive Relay."""
