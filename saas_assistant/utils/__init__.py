"""Shared utilities for the SaaS assistant."""
