"""Core configuration, constants and exceptions for dispatchkit."""
