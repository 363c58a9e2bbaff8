"""Interactive company formation wizard."""

from .flow import FlowController, FlowResult, FlowSettings, FlowStatus, Step
from .models import CompanyType, FormationDraft, Jurisdiction

__all__ = [
    "CompanyType",
    "FlowController",
    "FlowResult",
    "FlowSettings",
    "FlowStatus",
    "FormationDraft",
    "Jurisdiction",
    "Step",
]
