"""
Step collectors.

Each collector asks for one draft field, pre-filling whatever the draft
already holds, and writes only that field back. Collectors never decide
where the wizard goes next; that is the flow controller's job.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Callable, Dict, List, Optional

from common.validators import (
    parse_decimal,
    validate_authorized_shares,
    validate_city,
    validate_company_name,
    validate_email,
    validate_ownership_percent,
    validate_par_value,
    validate_party_count,
    validate_person_name,
    validate_phone,
    validate_required,
    validate_state_code,
    validate_street_address,
    validate_zip_code,
)

from .models import (
    ENTITY_ENDINGS,
    OWNERSHIP_TOTAL,
    RECOMMENDED_AGENT,
    STANDARD_SHARE_STRUCTURE,
    Address,
    AuthorizedSigner,
    CompanyType,
    FormationDraft,
    Jurisdiction,
    Party,
    PartyRole,
    RegisteredAgent,
    ShareStructure,
    default_entity_ending,
    ownership_balanced,
    requires_share_structure,
    roles_for,
    strip_entity_ending,
)
from .prompts import Choice, Prompter, select, text


Collector = Callable[[FormationDraft, Prompter], None]

_COMPANY_TYPE_LABELS = {
    CompanyType.LLC: "LLC (Limited Liability Company)",
    CompanyType.C_CORP: "C-Corp (C Corporation)",
    CompanyType.S_CORP: "S-Corp (S Corporation)",
}

RECOMMENDED = "recommended"
STANDARD = "standard"
CUSTOM = "custom"
OTHER_SIGNER = -1

_STOCK_TITLES = frozenset({"Managing Member", "President"})


def collect_jurisdiction(draft: FormationDraft, prompter: Prompter) -> None:
    choices = [Choice(j.label, j) for j in Jurisdiction]
    answer = prompter.ask(
        select(
            "jurisdiction",
            "Which state will you form your company in?",
            choices,
            default=draft.jurisdiction or Jurisdiction.DE,
        )
    )
    draft.fill("jurisdiction", Jurisdiction(answer))


def collect_company_type(draft: FormationDraft, prompter: Prompter) -> None:
    choices = [Choice(_COMPANY_TYPE_LABELS[ct], ct) for ct in CompanyType]
    answer = prompter.ask(
        select("company_type", "What type of company?", choices, default=draft.company_type)
    )
    draft.fill("company_type", CompanyType(answer))


def collect_entity_ending(draft: FormationDraft, prompter: Prompter) -> None:
    company_type = _require_company_type(draft)
    endings = ENTITY_ENDINGS[company_type]
    default = draft.entity_ending
    if default not in endings:
        default = default_entity_ending(company_type, draft.jurisdiction or Jurisdiction.DE)
    answer = prompter.ask(
        select(
            "entity_ending",
            "Which entity ending should appear after the name?",
            [Choice(e, e) for e in endings],
            default=default,
        )
    )
    draft.fill("entity_ending", answer)


def collect_base_name(draft: FormationDraft, prompter: Prompter) -> None:
    """Ask for the base name; a typed entity ending is dropped."""
    company_type = _require_company_type(draft)

    def check(raw: str):
        return validate_company_name(strip_entity_ending(raw, company_type))

    answer = prompter.ask(
        text(
            "base_name",
            f"Company name (without '{draft.entity_ending}')",
            default=draft.base_name or None,
            validate=check,
        )
    )
    base_name = strip_entity_ending(answer, company_type)
    if base_name != answer.strip():
        prompter.notify(f"Removed the entity ending from '{answer.strip()}'", "muted")
    draft.fill("base_name", base_name)
    prompter.notify(f"Full name: {draft.full_company_name}", "muted")


def collect_registered_agent(draft: FormationDraft, prompter: Prompter) -> None:
    current = draft.registered_agent
    is_custom = current is not None and current != RECOMMENDED_AGENT
    choice = prompter.ask(
        select(
            "registered_agent",
            "Registered agent",
            [
                Choice(f"Use recommended: {RECOMMENDED_AGENT.name}", RECOMMENDED),
                Choice("Enter my own registered agent", CUSTOM),
            ],
            default=CUSTOM if is_custom else RECOMMENDED,
        )
    )
    if choice == RECOMMENDED:
        draft.fill("registered_agent", RECOMMENDED_AGENT.model_copy(deep=True))
        return

    previous = current if is_custom else None
    state = (draft.jurisdiction or Jurisdiction.DE).value
    name = _ask_text(prompter, "agent_name", "Agent name", previous and previous.name,
                     lambda v: validate_required(v, "Agent name"))
    address = _ask_address(prompter, "agent", previous.address if previous else None, fixed_state=state)
    email = _ask_text(prompter, "agent_email", "Agent email", previous and previous.email, validate_email)
    phone = _ask_text(prompter, "agent_phone", "Agent phone", previous and previous.phone, validate_phone)
    draft.fill("registered_agent", RegisteredAgent(name=name, address=address, email=email, phone=phone))


def collect_share_structure(draft: FormationDraft, prompter: Prompter) -> None:
    current = draft.share_structure
    is_custom = current is not None and current != STANDARD_SHARE_STRUCTURE
    choice = prompter.ask(
        select(
            "share_structure",
            "Share structure",
            [
                Choice(
                    f"Standard: {STANDARD_SHARE_STRUCTURE.authorized_shares:,} shares "
                    f"at ${STANDARD_SHARE_STRUCTURE.par_value} par value",
                    STANDARD,
                ),
                Choice("Custom", CUSTOM),
            ],
            default=CUSTOM if is_custom else STANDARD,
        )
    )
    if choice == STANDARD:
        draft.fill("share_structure", STANDARD_SHARE_STRUCTURE.model_copy())
        return

    shares = _ask_text(
        prompter, "authorized_shares", "Number of authorized shares",
        str(current.authorized_shares) if is_custom else None, validate_authorized_shares,
    )
    par_value = _ask_text(
        prompter, "par_value", "Par value per share ($)",
        current.par_value if is_custom else None, validate_par_value,
    )
    draft.fill(
        "share_structure",
        ShareStructure(
            authorized_shares=int(parse_decimal(shares)),
            par_value=str(parse_decimal(par_value)),
        ),
    )


def collect_parties(draft: FormationDraft, prompter: Prompter) -> None:
    """Collect every party; repeats until ownership adds up to 100%."""
    company_type = _require_company_type(draft)
    noun = "member" if company_type is CompanyType.LLC else "shareholder"
    previous: List[Party] = list(draft.parties)

    while True:
        count_raw = _ask_text(
            prompter, "party_count", f"How many {noun}s?",
            str(len(previous) or 1), validate_party_count,
        )
        count = int(parse_decimal(count_raw))
        parties: List[Party] = []
        for index in range(count):
            prior = previous[index] if index < len(previous) else None
            remaining = OWNERSHIP_TOTAL - sum((p.ownership_percent for p in parties), Decimal("0"))
            parties.append(_ask_party(prompter, company_type, index, count, prior, remaining))

        if ownership_balanced(parties):
            draft.fill("parties", parties)
            return
        total = sum((p.ownership_percent for p in parties), Decimal("0"))
        prompter.notify(
            f"Ownership adds up to {total}%, it must total {OWNERSHIP_TOTAL}%. Please re-enter the {noun}s.",
            "error",
        )
        previous = parties


def collect_authorized_signer(draft: FormationDraft, prompter: Prompter) -> None:
    current = draft.authorized_signer
    choices = [Choice(f"{p.name} ({p.role.value})", i) for i, p in enumerate(draft.parties)]
    choices.append(Choice("Someone else", OTHER_SIGNER))
    default = OTHER_SIGNER
    if current is not None and current.party_index is not None:
        default = current.party_index
    elif current is None and draft.parties:
        default = 0
    picked = prompter.ask(
        select("authorized_signer", "Who will sign the formation documents?", choices, default=default)
    )

    if picked == OTHER_SIGNER:
        prior_name = current.name if current is not None and current.party_index is None else None
        name = _ask_text(prompter, "signer_name", "Signer's full name", prior_name,
                         lambda v: validate_person_name(v, full=True))
        party_index: Optional[int] = None
    else:
        party_index = int(picked)
        name = draft.parties[party_index].name

    title = _ask_text(
        prompter, "signer_title", "Signer's title",
        _title_default(current, draft.company_type),
        lambda v: validate_required(v, "Title"),
    )
    draft.fill("authorized_signer", AuthorizedSigner(party_index=party_index, name=name, title=title))


COLLECTORS: Dict[str, Collector] = {
    "jurisdiction": collect_jurisdiction,
    "company_type": collect_company_type,
    "entity_ending": collect_entity_ending,
    "base_name": collect_base_name,
    "registered_agent": collect_registered_agent,
    "share_structure": collect_share_structure,
    "parties": collect_parties,
    "authorized_signer": collect_authorized_signer,
}


def render_summary(draft: FormationDraft) -> List[str]:
    lines = [
        f"Company name:     {draft.full_company_name or '-'}",
        f"State:            {draft.jurisdiction.label if draft.jurisdiction else '-'}",
        f"Company type:     {draft.company_type.value if draft.company_type else '-'}",
    ]
    agent = draft.registered_agent
    lines.append(f"Registered agent: {agent.name if agent else '-'}")
    if agent is not None:
        lines.append(f"                  {agent.address.one_line()}")
    if requires_share_structure(draft.company_type):
        shares = draft.share_structure
        lines.append(f"Authorized shares: {shares.authorized_shares:,}" if shares else "Authorized shares: -")
        lines.append(f"Par value:        ${shares.par_value}" if shares else "Par value:        -")
    for party in draft.parties:
        lines.append(f"  - {party.name}, {party.role.value}, {party.ownership_percent}%")
    signer = draft.authorized_signer
    if signer is not None:
        lines.append(f"Authorized signer: {signer.name}, {signer.title}")
    return lines


# -------- Helpers --------
def _require_company_type(draft: FormationDraft) -> CompanyType:
    if draft.company_type is None:
        raise ValueError("company type must be selected first")
    return draft.company_type


def _default_title(company_type: Optional[CompanyType]) -> str:
    return "Managing Member" if company_type is CompanyType.LLC else "President"


def _title_default(current: Optional[AuthorizedSigner], company_type: Optional[CompanyType]) -> str:
    # A stock title from the other company type is replaced, a custom one is kept
    if current is None or current.title in _STOCK_TITLES:
        return _default_title(company_type)
    return current.title


def _ask_text(prompter: Prompter, key: str, message: str, default: Optional[str], validate) -> str:
    return prompter.ask(text(key, message, default=default, validate=validate)).strip()


def _ask_address(
    prompter: Prompter, prefix: str, previous: Optional[Address], *, fixed_state: Optional[str] = None
) -> Address:
    street = _ask_text(prompter, f"{prefix}_street", "Street address",
                       previous and previous.street, validate_street_address)
    city = _ask_text(prompter, f"{prefix}_city", "City", previous and previous.city, validate_city)
    if fixed_state is not None:
        state = fixed_state
    else:
        state = _ask_text(prompter, f"{prefix}_state", "State (2 letters)",
                          previous and previous.state, validate_state_code).upper()
    zip_code = _ask_text(prompter, f"{prefix}_zip", "ZIP code", previous and previous.zip_code, validate_zip_code)
    return Address(street=street, city=city, state=state, zip_code=zip_code)


def _ask_party(
    prompter: Prompter,
    company_type: CompanyType,
    index: int,
    count: int,
    prior: Optional[Party],
    remaining: Decimal,
) -> Party:
    prompter.notify(f"Party {index + 1} of {count}", "info")
    name = _ask_text(prompter, "party_name", "Full name", prior and prior.name,
                     lambda v: validate_person_name(v, full=True))
    address = _ask_address(prompter, "party", prior.address if prior else None)
    if prior is not None:
        ownership_default = str(prior.ownership_percent)
    elif index == count - 1 and remaining > 0:
        ownership_default = str(remaining)
    else:
        ownership_default = None
    ownership = _ask_text(prompter, "party_ownership", "Ownership percentage",
                          ownership_default, validate_ownership_percent)
    roles = roles_for(company_type)
    role_default = prior.role if prior is not None and prior.role in roles else roles[0]
    role = prompter.ask(
        select("party_role", "Role", [Choice(r.value.title(), r) for r in roles], default=role_default)
    )
    return Party(
        name=name,
        address=address,
        ownership_percent=parse_decimal(ownership),
        role=PartyRole(role),
    )


__all__ = [
    "COLLECTORS",
    "Collector",
    "collect_authorized_signer",
    "collect_base_name",
    "collect_company_type",
    "collect_entity_ending",
    "collect_jurisdiction",
    "collect_parties",
    "collect_registered_agent",
    "collect_share_structure",
    "render_summary",
]
