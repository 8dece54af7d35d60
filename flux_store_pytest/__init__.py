"""Pytest fixtures for testing stores built with flux_store."""
