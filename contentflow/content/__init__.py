"""Content record store: repositories and the content service."""
