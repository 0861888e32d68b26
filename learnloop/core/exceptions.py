"""Error taxonomy for the tutoring engine.

- LearnLoopError: base for every error raised by the core
- NotFoundError: a session, content, concept, learning map or prompt is absent
- ValidationError: a request cannot be applied (bad payload, illegal transition)
- ProviderError: an LLM call failed after retries and fallback
- MalformedAIOutputError: an AI response could not be decoded as expected

The API layer maps each family to a stable HTTP status. Role services
recover from MalformedAIOutputError locally; only the planner lets it escape.
"""

from typing import Any, Dict, Optional


class LearnLoopError(Exception):
    """Base exception for all LearnLoop errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
    """

    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class NotFoundError(LearnLoopError):
    """A referenced entity does not exist (or is not visible to the caller)."""

    status_code = 404


class SessionNotFoundError(NotFoundError):
    def __init__(self, session_id: str):
        super().__init__("Session not found", {"session_id": session_id})


class ContentNotFoundError(NotFoundError):
    def __init__(self, content_id: str):
        super().__init__("Content not found", {"content_id": content_id})


class ConceptNotFoundError(NotFoundError):
    def __init__(self, concept_id: str):
        super().__init__("Concept not found", {"concept_id": concept_id})


class LearningMapNotFoundError(NotFoundError):
    def __init__(self, content_id: str):
        super().__init__("Learning map not found", {"content_id": content_id})


class PromptNotFoundError(NotFoundError):
    def __init__(self, role: str):
        super().__init__(f"Prompt not found for role: {role}", {"role": role})


class ValidationError(LearnLoopError):
    """A request is malformed or cannot be applied in the current state."""

    status_code = 400


class InvalidTransitionError(ValidationError):
    """No transition is defined for (state, action)."""

    def __init__(self, state: str, action: str):
        super().__init__(
            f"Cannot apply '{action}' in state '{state}'",
            {"state": state, "action": action},
        )


class ProviderError(LearnLoopError):
    """An LLM provider call failed after exhausting retries and fallback."""

    status_code = 502

    def __init__(self, message: str, provider: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if provider:
            details.setdefault("provider", provider)
        self.provider = provider
        super().__init__(message, details)


class ProviderUnavailableError(ProviderError):
    """No credential is configured for the provider (or its fallback)."""

    status_code = 503


class MalformedAIOutputError(LearnLoopError):
    """The AI response was not the structured output the caller expected."""

    status_code = 502

    def __init__(self, message: str = "Invalid AI response format", raw: str = ""):
        self.raw = raw
        super().__init__(message, {"preview": raw[:200]} if raw else None)
