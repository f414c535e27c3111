# src/runboard/__init__.py

"""Runboard: run leaderboard and live viewer count service."""

__version__ = "0.1.0"
