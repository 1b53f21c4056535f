from __future__ import annotations

from decimal import Decimal


class WorkflowError(Exception):
    status_code = 400
    code = "workflow_error"

    def to_dict(self) -> dict[str, object]:
        return {"error": self.code, "message": str(self)}


class NotFoundError(WorkflowError):
    # Also raised for records of another organization.
    status_code = 404
    code = "not_found"

    def __init__(self, resource: str, resource_id: int | str | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        msg = resource
        if resource_id is not None:
            msg += f" id={resource_id}"
        super().__init__(f"{msg} not found")


class ValidationError(WorkflowError):
    status_code = 422
    code = "validation_error"

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        payload = super().to_dict()
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidTransition(WorkflowError):
    status_code = 409
    code = "invalid_transition"

    def __init__(self, current: str, requested: str | None = None, message: str | None = None) -> None:
        self.current = current
        self.requested = requested
        if message is None:
            message = f"Invalid transition: {current} -> {requested}" if requested else f"Invalid transition from {current}"
        super().__init__(message)


class StaleState(WorkflowError):
    """The expected predecessor state no longer matches; the caller must refetch."""

    status_code = 409
    code = "stale_state"


class LedgerImbalance(WorkflowError):
    status_code = 500
    code = "ledger_imbalance"

    def __init__(self, transaction_id: str, debits: Decimal, credits: Decimal) -> None:
        self.transaction_id = transaction_id
        self.debits = debits
        self.credits = credits
        super().__init__(f"Transaction {transaction_id} is unbalanced: debits={debits} credits={credits}")


class PermissionDenied(WorkflowError):
    status_code = 403
    code = "permission_denied"

    def __init__(self, capability: str) -> None:
        self.capability = capability
        super().__init__(f"Missing capability: {capability}")
