from __future__ import annotations

import re
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from pydantic import BaseModel, Field


class Jurisdiction(str, Enum):
    DE = "DE"

    @property
    def label(self) -> str:
        return _JURISDICTION_NAMES[self]


_JURISDICTION_NAMES = {Jurisdiction.DE: "Delaware"}


class CompanyType(str, Enum):
    LLC = "LLC"
    C_CORP = "C-Corp"
    S_CORP = "S-Corp"


def requires_share_structure(company_type: Optional[CompanyType]) -> bool:
    return company_type is not None and company_type is not CompanyType.LLC


ENTITY_ENDINGS: Dict[CompanyType, Tuple[str, ...]] = {
    CompanyType.LLC: ("LLC", "L.L.C.", "Limited Liability Company"),
    CompanyType.C_CORP: (
        "Inc.", "Incorporated", "Corp.", "Corporation",
        "Company", "Co.", "Limited", "Ltd.",
        "Association", "Club", "Foundation", "Fund",
        "Institute", "Society", "Syndicate", "Union",
    ),
    CompanyType.S_CORP: (
        "Inc.", "Incorporated", "Corp.", "Corporation",
        "Company", "Co.", "Limited", "Ltd.",
    ),
}

# Only Delaware is supported, so the jurisdiction never changes the default
_DEFAULT_ENDINGS: Dict[Tuple[CompanyType, Jurisdiction], str] = {
    (CompanyType.LLC, Jurisdiction.DE): "LLC",
    (CompanyType.C_CORP, Jurisdiction.DE): "Inc.",
    (CompanyType.S_CORP, Jurisdiction.DE): "Inc.",
}


def default_entity_ending(company_type: CompanyType, jurisdiction: Jurisdiction) -> str:
    return _DEFAULT_ENDINGS[(company_type, jurisdiction)]


def strip_entity_ending(name: str, company_type: CompanyType) -> str:
    """Drop a trailing entity ending the user typed as part of the base name."""
    cleaned = name.strip()
    # Longest first so "Limited Liability Company" wins over "Company"
    for ending in sorted(ENTITY_ENDINGS[company_type], key=len, reverse=True):
        pattern = re.compile(r"[\s,]+" + re.escape(ending) + r"\s*$", re.IGNORECASE)
        stripped = pattern.sub("", cleaned).strip()
        if stripped != cleaned and stripped:
            return stripped
    return cleaned


class Address(BaseModel):
    street: str
    city: str
    state: str
    zip_code: str

    def one_line(self) -> str:
        return f"{self.street}, {self.city}, {self.state} {self.zip_code}"


class RegisteredAgent(BaseModel):
    name: str
    address: Address
    email: Optional[str] = None
    phone: Optional[str] = None


RECOMMENDED_AGENT = RegisteredAgent(
    name="Harvard Business Services, Inc.",
    address=Address(street="16192 Coastal Highway", city="Lewes", state="DE", zip_code="19958"),
    email="orders@delawareinc.com",
    phone="1-800-345-2677",
)


class ShareStructure(BaseModel):
    authorized_shares: int = Field(..., gt=0)
    par_value: str = Field(..., description="Par value per share as a decimal string")


STANDARD_SHARE_STRUCTURE = ShareStructure(authorized_shares=10_000_000, par_value="0.00001")


class PartyRole(str, Enum):
    MEMBER = "member"
    MANAGING_MEMBER = "managing member"
    SHAREHOLDER = "shareholder"
    DIRECTOR = "director"


def roles_for(company_type: Optional[CompanyType]) -> Tuple[PartyRole, ...]:
    if company_type is CompanyType.LLC:
        return (PartyRole.MEMBER, PartyRole.MANAGING_MEMBER)
    return (PartyRole.SHAREHOLDER, PartyRole.DIRECTOR)


class Party(BaseModel):
    name: str
    address: Address
    ownership_percent: Decimal
    role: PartyRole


class AuthorizedSigner(BaseModel):
    """Either one of the parties (by position) or an external person."""

    party_index: Optional[int] = None
    name: str
    title: str


OWNERSHIP_TOTAL = Decimal("100")
OWNERSHIP_TOLERANCE = Decimal("0.01")

DRAFT_FIELDS = (
    "jurisdiction",
    "company_type",
    "entity_ending",
    "base_name",
    "registered_agent",
    "share_structure",
    "parties",
    "authorized_signer",
)


class FormationDraft(BaseModel):
    """
    The formation data assembled by the wizard.

    `filled` records which fields the user has answered. A field can be
    filled and still hold an empty value, and clearing a field drops the
    flag, so "never visited" and "visited then invalidated" stay distinct
    from the value itself.
    """

    jurisdiction: Optional[Jurisdiction] = None
    company_type: Optional[CompanyType] = None
    entity_ending: str = ""
    base_name: str = ""
    registered_agent: Optional[RegisteredAgent] = None
    share_structure: Optional[ShareStructure] = None
    parties: List[Party] = Field(default_factory=list)
    authorized_signer: Optional[AuthorizedSigner] = None
    filled: Set[str] = Field(default_factory=set)

    def fill(self, field: str, value: Any) -> None:
        if field not in DRAFT_FIELDS:
            raise KeyError(field)
        setattr(self, field, value)
        self.filled.add(field)

    def clear(self, field: str) -> None:
        if field not in DRAFT_FIELDS:
            raise KeyError(field)
        default = FormationDraft.model_fields[field].get_default(call_default_factory=True)
        setattr(self, field, default)
        self.filled.discard(field)

    def is_filled(self, field: str) -> bool:
        return field in self.filled

    @property
    def full_company_name(self) -> str:
        return f"{self.base_name} {self.entity_ending}".strip()

    def total_ownership(self) -> Decimal:
        # Always recomputed from the current party list
        return sum((p.ownership_percent for p in self.parties), Decimal("0"))

    def ownership_balanced(self) -> bool:
        return ownership_balanced(self.parties)

    def incomplete_fields(self) -> List[str]:
        """Fields that block confirmation, in step order."""
        missing: List[str] = []
        if self.jurisdiction is None:
            missing.append("jurisdiction")
        if self.company_type is None:
            missing.append("company_type")
        elif self.entity_ending not in ENTITY_ENDINGS[self.company_type]:
            missing.append("entity_ending")
        if not self.base_name:
            missing.append("base_name")
        if self.registered_agent is None:
            missing.append("registered_agent")
        if requires_share_structure(self.company_type) and self.share_structure is None:
            missing.append("share_structure")
        roles = roles_for(self.company_type)
        if (
            not self.parties
            or not self.ownership_balanced()
            or any(p.role not in roles for p in self.parties)
        ):
            missing.append("parties")
        signer = self.authorized_signer
        if signer is None or (signer.party_index is not None and signer.party_index >= len(self.parties)):
            missing.append("authorized_signer")
        return missing


def ownership_balanced(parties: List[Party]) -> bool:
    total = sum((p.ownership_percent for p in parties), Decimal("0"))
    return abs(total - OWNERSHIP_TOTAL) <= OWNERSHIP_TOLERANCE


class NameStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    FAILED = "failed"


class NameCheckOutcome(BaseModel):
    """A name-check result after the controller merged it."""

    name: str
    jurisdiction: str
    status: NameStatus
    suggestions: List[str] = Field(default_factory=list)
    reason: Optional[str] = None


__all__ = [
    "Address",
    "AuthorizedSigner",
    "CompanyType",
    "DRAFT_FIELDS",
    "ENTITY_ENDINGS",
    "FormationDraft",
    "Jurisdiction",
    "NameCheckOutcome",
    "NameStatus",
    "Party",
    "PartyRole",
    "RECOMMENDED_AGENT",
    "RegisteredAgent",
    "STANDARD_SHARE_STRUCTURE",
    "ShareStructure",
    "default_entity_ending",
    "ownership_balanced",
    "requires_share_structure",
    "roles_for",
    "strip_entity_ending",
]
