"""Permissioned store for received cell broadcast alerts."""
