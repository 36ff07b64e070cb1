"""Infrastructure: HTTP session and file sources."""
