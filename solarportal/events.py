"""
Domain events emitted by lifecycle transitions.

Transitions return a list of DomainEvent; they never notify anyone themselves.
notifications.dispatch() turns events into role-targeted notifications.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

PROJECT_SUBMITTED = "project_submitted"
PROJECT_APPROVED = "project_approved"
CONTACT_SHARED = "contact_shared"
QUOTE_SUBMITTED = "quote_submitted"
QUOTE_REVISED = "quote_revised"
DEAL_SIGNED = "deal_signed"
REVIEW_SUBMITTED = "review_submitted"


@dataclass(frozen=True)
class DomainEvent:
    kind: str
    # The project object, not its id: a freshly submitted project only gets an id at flush.
    project: Any
    params: dict = field(default_factory=dict)
    installer_id: Optional[int] = None
    quote: Any = None

    @property
    def project_id(self):
        return getattr(self.project, "id", None)
