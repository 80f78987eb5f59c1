"""Service layer for dispatchkit."""
