"""Exceptions raised by the search agent."""


class SearchAgentError(Exception):
    """Base class for all agent errors."""


class OracleError(SearchAgentError):
    """The text-completion service failed, timed out, or returned nothing."""


class SessionNotFoundError(SearchAgentError, KeyError):
    """No session exists for the given id."""

    def __init__(self, session_id: str):
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session not found: {self.session_id}"
