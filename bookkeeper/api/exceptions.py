"""Custom exception classes for the API."""


class ScopeNotFoundError(Exception):
    """Raised when the book or series an AI query is scoped to does not exist."""

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource.capitalize()} with ID '{resource_id}' not found")
