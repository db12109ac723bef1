"""
Application errors for clean API error handling.

Scheduler errors (QuotaExhausted, TransientProviderError) bubble unmodified to the
generator that made the call. Domain errors carry a polite user_message and the HTTP
status the API layer answers with.
"""


class ServiceUnavailableError(Exception):
    """Raised when a required service (e.g. LLM provider, search API) is unavailable or misconfigured."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ProviderError(Exception):
    """Non-transient failure from an external provider (bad response, HTTP 4xx/5xx)."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class TransientProviderError(ProviderError):
    """Rate-limit or connection-reset signal. Retried by the backoff executor."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class AssistantError(Exception):
    """Base for errors that are shown to the user as an error notice."""

    status_code: int = 400
    user_message: str = "Something went wrong while handling your message."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.user_message
        super().__init__(self.message)


class QuotaExhausted(AssistantError):
    """Daily provider quota used up. Not retryable until the counter resets."""

    status_code = 429
    user_message = "Daily quota exhausted. Please try again tomorrow."


class NoResultsFound(AssistantError):
    status_code = 404
    user_message = "No relevant papers found. Please refine your query."


class NoContext(AssistantError):
    status_code = 409
    user_message = "There are no papers in this conversation yet. Search for a topic first."


class ReferenceOutOfRange(AssistantError):
    status_code = 422
    user_message = "That paper number is not in the current list."

    def __init__(self, index: int, size: int) -> None:
        self.index = index
        self.size = size
        super().__init__(
            f"Paper {index + 1} is not in the current list of {size} paper(s)."
            if size
            else "There are no papers in the current list."
        )


class InsufficientComparisonSet(AssistantError):
    status_code = 409
    user_message = "I need at least two papers in the conversation to make a comparison."


class SectionNotFound(AssistantError):
    """Handled inside the generators: falls back to the abstract, never reaches the user."""

    status_code = 404
    user_message = "That section could not be found in the paper."

    def __init__(self, section: str | None) -> None:
        self.section = section
        super().__init__(f"Section {section!r} not found" if section else "No section name recognized")
