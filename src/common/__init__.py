"""
Shared building blocks for the formation wizard.

Modules:
- agent_client: HTTP client for the name-availability service with retries
- config: environment-driven Settings
- logging_config: process-wide logging setup
- validators: field validators for user input
"""

__all__ = [
    "agent_client",
    "config",
    "logging_config",
    "validators",
]
