"""Persistence — append-only event log."""
