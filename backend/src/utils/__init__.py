"""
Utility modules for the spacecal backend.

This package contains shared utilities used across the application:
- timezone: Wall-clock shifting and occurrence date keys
- logging_config: Structured logging setup
"""
