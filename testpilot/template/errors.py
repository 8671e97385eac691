from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional


class ErrorKind(str, Enum):
    MALFORMED_EXPRESSION = "malformed_expression"
    UNKNOWN_RESPONSE_ALIAS = "unknown_response_alias"
    UNKNOWN_PROCESSED_ALIAS = "unknown_processed_alias"
    UNKNOWN_PARAMETER = "unknown_parameter"
    UNKNOWN_ENVIRONMENT_VARIABLE = "unknown_environment_variable"
    UNKNOWN_FUNCTION = "unknown_function"
    INVALID_FUNCTION_ARGUMENTS = "invalid_function_arguments"
    PATH_NOT_FOUND = "path_not_found"
    ASYNC_FUNCTION_IN_SYNC_RENDER = "async_function_in_sync_render"


class ResolutionError(Exception):
    """Raised when a single expression cannot be resolved"""

    def __init__(self, kind: ErrorKind, message: str, expression: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.expression = expression

    def __repr__(self):
        return f"<ResolutionError(kind='{self.kind.value}', message='{self.message}')>"


@dataclass(frozen=True)
class ResolutionIssue:
    """One unresolved (or soft-missed) expression, tagged with where it lives.

    ``location`` is the structural path inside the rendered value, e.g.
    ``steps[2].endpoints[0].body.userId``; the empty string is the root.
    ``position`` is the character offset of the token inside its string.
    """

    location: str
    expression: str
    position: int
    kind: ErrorKind
    message: str

    def to_dict(self) -> dict:
        return {
            "location": self.location,
            "expression": self.expression,
            "position": self.position,
            "kind": self.kind.value,
            "message": self.message,
        }


class TemplateResolutionError(Exception):
    """Aggregate failure of one render pass.

    Carries every issue found while visiting the whole value, and the
    partially rendered value (failed expressions are left as raw text).
    """

    def __init__(self, issues: List[ResolutionIssue], partial: Any = None):
        self.issues = list(issues)
        self.partial = partial
        summary = "; ".join(
            f"{issue.location or '<root>'}: {issue.expression} ({issue.kind.value})"
            for issue in self.issues
        )
        super().__init__(f"{len(self.issues)} unresolved template expression(s): {summary}")

    @property
    def kinds(self) -> List[ErrorKind]:
        return [issue.kind for issue in self.issues]
