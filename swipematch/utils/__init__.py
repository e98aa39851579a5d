"""Utility helpers for the SwipeMatch engine."""
