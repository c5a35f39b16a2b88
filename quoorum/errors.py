"""Debate pipeline errors. Provider failures live in quoorum.providers.base."""


class QuoorumError(Exception):
    """Base for all debate pipeline errors."""


class ValidationError(QuoorumError):
    """Invalid input or configuration. Never retried."""


class AnalysisError(QuoorumError):
    """Question analysis produced no usable result after its retry."""


class PersonaCallError(QuoorumError):
    """A persona could not produce a message within its retry budget."""

    def __init__(self, agent_key: str, attempts: int, message: str) -> None:
        self.agent_key = agent_key
        self.attempts = attempts
        super().__init__(f"[{agent_key}] {message} (after {attempts} attempt(s))")
