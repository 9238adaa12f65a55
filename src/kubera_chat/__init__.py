"""
kubera-chat: streaming chat client for the KUBERA conversational backend.

The package owns the persistent socket to the chat backend and turns its
frame stream into an observable session snapshot. Chat history, profile and
portfolio resources are served by the REST API and are not handled here.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
