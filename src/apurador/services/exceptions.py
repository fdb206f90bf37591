from __future__ import annotations


class ApuradorError(Exception):
    """Base class for errors raised by the apurador services."""


class RuleConfigurationError(ApuradorError):
    """A company's rule file is missing required data or cannot be parsed."""

    def __init__(self, message: str, company_id: str | None = None) -> None:
        super().__init__(message)
        self.company_id = company_id


class ParseError(ApuradorError):
    """The line item producer could not parse a fiscal file."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class ScheduleExtractionError(ApuradorError):
    """The benefit schedule extractor could not build a rule configuration."""


class CollaboratorError(ApuradorError):
    """A configured collaborator factory could not be imported or built."""
