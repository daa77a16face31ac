"""
Exceptions raised by the section resolver.

Absence (missing markers, missing or stale cache entries) is never an error;
these cover wiring bugs and loader contract violations only.
"""


class SectionError(Exception):
    """Base class for section resolver errors."""


class SectionNotRegisteredError(SectionError, KeyError):
    """Raised when load() is called for a section that was never added."""

    def __init__(self, section: str):
        self.section = section
        super().__init__(f"Section '{section}' is not registered; call add() before load()")

    def __str__(self) -> str:
        return self.args[0]


class BatchLoadError(SectionError):
    """Raised when the batch loader returns a result of an unusable shape."""

    def __init__(self, message: str, sections=None):
        self.sections = list(sections or [])
        super().__init__(message)
