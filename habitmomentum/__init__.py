"""Habit momentum backend: scoring engine, sweeps and HTTP API."""
