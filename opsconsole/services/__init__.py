"""Workflows that combine backend clients with local state."""
