"""Exceptions raised by the document join engine."""

from typing import List, Optional


class JoinError(Exception):
    """Base exception for document building."""
    pass


class NotFoundError(JoinError, LookupError):
    """The lead table or lead row of a build does not exist."""

    def __init__(self, message: str, table_id: Optional[str] = None, row_index: Optional[int] = None):
        super().__init__(message)
        self.table_id = table_id
        self.row_index = row_index


class RelationshipValidationError(JoinError):
    """Raised in strict mode when relationships reference unknown tables or columns."""

    def __init__(self, problems: List[str]):
        super().__init__("Invalid relationships: " + "; ".join(problems))
        self.problems = problems
