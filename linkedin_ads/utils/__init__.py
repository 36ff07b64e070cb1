"""Utility helpers for the LinkedIn Ads CLI."""
