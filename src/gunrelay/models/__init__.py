"""Relay, probe and commitment data models."""
