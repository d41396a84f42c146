"""Short link redirect service."""
