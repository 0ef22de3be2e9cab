"""Authentication and CORS middleware."""
