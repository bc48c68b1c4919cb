"""
Domain errors for the activity feed and assignment sync.

Projection errors never reach the caller of a source write; they are raised
inside a savepoint and swallowed by the projection writer.
"""


class DuplicateProjectionError(Exception):
    """The source event already has an activity record."""

    def __init__(self, source_kind: str, source_id: int):
        super().__init__(f"{source_kind}:{source_id} already projected")
        self.source_kind = source_kind
        self.source_id = source_id


class ReferenceResolutionError(LookupError):
    """A denormalised lookup (video, goal, course title) found no row."""


class InvariantViolationError(RuntimeError):
    """More than one active assignment, or a drifted profile pointer, was found."""


class CascadeDeletionError(RuntimeError):
    """A source delete left its activity record behind."""
