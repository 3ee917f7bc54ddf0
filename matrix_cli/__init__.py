"""
matrix-cli - a command-line client for the Matrix messaging protocol.

This package provides:
- Login and session persistence with restore on later runs
- Room alias resolution shared by every room-targeted command
- Message, user profile and room management commands
- A background sync loop raced against the running command
"""

__version__ = "0.1.0"
__author__ = "matrix-cli contributors"
