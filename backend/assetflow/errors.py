# Overview: Domain error taxonomy shared by every workflow service.

"""
Workflow errors.

Every workflow command either completes or raises one of these. They are
domain errors, not technical errors: each one means the caller asked for
something the business rules do not allow, and nothing was written.

KINDS:
    NOT_FOUND         referenced entity id does not exist
    UNAUTHORIZED      the approval gate denied the actor's role
    INVALID_STATE     transition not reachable from the current status
    CONFLICT          an asset/guarantee hold would be doubled, or a race
                      was lost at commit time
    VALIDATION_ERROR  required field missing or malformed
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for all workflow failures."""

    kind = "WORKFLOW_ERROR"

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        data = {"kind": self.kind, "message": self.message}
        if self.field:
            data["field"] = self.field
        return data


class NotFoundError(WorkflowError):
    kind = "NOT_FOUND"


class UnauthorizedError(WorkflowError):
    kind = "UNAUTHORIZED"


class InvalidStateError(WorkflowError):
    kind = "INVALID_STATE"


class GuaranteeOnLoanError(InvalidStateError):
    """Guarantee is currently loaned out and must be returned first."""

    kind = "GUARANTEE_ON_LOAN"


class GuaranteeSettledError(InvalidStateError):
    """Guarantee is settled (lunas); no further loan or settlement."""

    kind = "GUARANTEE_SETTLED"


class ConflictError(WorkflowError):
    kind = "CONFLICT"


class ValidationError(WorkflowError):
    kind = "VALIDATION_ERROR"
