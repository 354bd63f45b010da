"""Pepzi goal and schedule engine."""
