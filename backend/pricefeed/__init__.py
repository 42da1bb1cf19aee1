"""Streaming market price client."""
