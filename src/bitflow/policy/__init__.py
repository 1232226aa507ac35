"""Protocol configuration."""
