"""Domain models for the LinkedIn Ads CLI."""
