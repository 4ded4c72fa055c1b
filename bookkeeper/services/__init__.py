"""Services package for application logic around the completion client."""

from . import ai_service, notes_service, prompts, search_log_service

__all__ = ["ai_service", "notes_service", "prompts", "search_log_service"]
