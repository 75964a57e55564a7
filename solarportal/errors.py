"""
Domain error taxonomy.

Every error is recoverable by the caller: the operation that raised it leaves the
project in its prior state (the workflow layer rolls the session back). The app
factory maps MarketplaceError to a JSON response with `status_code`.
"""

from __future__ import annotations


class MarketplaceError(Exception):
    """Base class for errors surfaced to API clients."""

    status_code = 400
    code = "marketplace_error"

    def to_dict(self) -> dict:
        return {"error": self.code, "message": str(self)}


class ValidationFailed(MarketplaceError):
    status_code = 400
    code = "validation_failed"


class Forbidden(MarketplaceError):
    """Actor's role (or ownership) does not allow the operation."""

    status_code = 403
    code = "forbidden"


class NotFound(MarketplaceError):
    status_code = 404
    code = "not_found"

    def __init__(self, entity: str, entity_id=None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is None:
            super().__init__(f"{entity} not found")
        else:
            super().__init__(f"{entity} {entity_id} not found")


class PreconditionFailed(MarketplaceError):
    """Transition attempted from a status it is not allowed from."""

    status_code = 409
    code = "precondition_failed"

    def __init__(self, action: str, expected, actual):
        self.action = action
        self.expected = tuple(expected)
        self.actual = actual
        names = ", ".join(_status_name(s) for s in self.expected) or "-"
        super().__init__(
            f"cannot {action}: expected status in ({names}), got {_status_name(actual)}"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["expected"] = [_status_name(s) for s in self.expected]
        data["actual"] = _status_name(self.actual)
        return data


class NotEligible(MarketplaceError):
    """Installer outside the service county, or acting on someone else's quote."""

    status_code = 403
    code = "not_eligible"


class AlreadySigned(MarketplaceError):
    status_code = 409
    code = "already_signed"

    def __init__(self, project_id):
        self.project_id = project_id
        super().__init__(f"project {project_id} is already signed")


class ConcurrentModification(MarketplaceError):
    """Lost an optimistic-lock race on a project."""

    status_code = 409
    code = "concurrent_modification"

    def __init__(self, project_id, expected_version=None, actual_version=None):
        self.project_id = project_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(f"project {project_id} was modified concurrently; reload and retry")


def _status_name(status) -> str:
    return getattr(status, "value", None) or str(status)
