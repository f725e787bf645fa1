"""Sourcing module - PNCP API access and attachment processing."""
