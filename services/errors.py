"""Domain errors raised by the pipeline services."""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for errors surfaced to API callers."""


class UnknownBinError(PipelineError, KeyError):
    def __init__(self, bin_id: str) -> None:
        super().__init__(f"Bin {bin_id!r} has not reported any telemetry.")
        self.bin_id = bin_id

    def __str__(self) -> str:
        return self.args[0]


class UnknownUserError(PipelineError, KeyError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"User {user_id!r} not found.")
        self.user_id = user_id

    def __str__(self) -> str:
        return self.args[0]


class UserDeletedError(PipelineError):
    def __init__(self, user_id: str) -> None:
        super().__init__(f"User {user_id!r} has been deleted.")
        self.user_id = user_id


class UnknownAssignmentError(PipelineError, KeyError):
    def __init__(self, assignment_id: str) -> None:
        super().__init__(f"Bin assignment {assignment_id!r} not found.")
        self.assignment_id = assignment_id

    def __str__(self) -> str:
        return self.args[0]


class EmptyingInProgressError(PipelineError):
    """A second emptying was requested while one awaits confirmation."""

    def __init__(self, bin_id: str) -> None:
        super().__init__(f"An emptying session is already awaiting confirmation for bin {bin_id!r}.")
        self.bin_id = bin_id


class NoActiveEmptyingError(PipelineError, KeyError):
    def __init__(self, bin_id: str) -> None:
        super().__init__(f"No emptying session is awaiting confirmation for bin {bin_id!r}.")
        self.bin_id = bin_id

    def __str__(self) -> str:
        return self.args[0]
