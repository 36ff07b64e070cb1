"""Core configuration, constants and errors for the LinkedIn Ads CLI."""
