from __future__ import annotations

from decimal import Decimal

from formation.models import (
    RECOMMENDED_AGENT,
    Address,
    AuthorizedSigner,
    CompanyType,
    FormationDraft,
    Jurisdiction,
    Party,
    PartyRole,
    STANDARD_SHARE_STRUCTURE,
    default_entity_ending,
    requires_share_structure,
    roles_for,
    strip_entity_ending,
)


def _party(name: str, pct: str) -> Party:
    return Party(
        name=name,
        address=Address(street="1 Main St", city="Dover", state="DE", zip_code="19901"),
        ownership_percent=Decimal(pct),
        role=PartyRole.MEMBER,
    )


def test_default_endings():
    assert default_entity_ending(CompanyType.LLC, Jurisdiction.DE) == "LLC"
    assert default_entity_ending(CompanyType.C_CORP, Jurisdiction.DE) == "Inc."
    assert default_entity_ending(CompanyType.S_CORP, Jurisdiction.DE) == "Inc."


def test_strip_entity_ending():
    assert strip_entity_ending("Acme LLC", CompanyType.LLC) == "Acme"
    assert strip_entity_ending("Acme, l.l.c.", CompanyType.LLC) == "Acme"
    assert strip_entity_ending("Acme Limited Liability Company", CompanyType.LLC) == "Acme"
    assert strip_entity_ending("Acme Inc.", CompanyType.C_CORP) == "Acme"
    # Not separated from the name, so not an ending
    assert strip_entity_ending("AcmeLLC", CompanyType.LLC) == "AcmeLLC"
    # Nothing left after stripping: keep what was typed
    assert strip_entity_ending("LLC", CompanyType.LLC) == "LLC"


def test_share_structure_and_roles_depend_on_type():
    assert not requires_share_structure(CompanyType.LLC)
    assert requires_share_structure(CompanyType.C_CORP)
    assert not requires_share_structure(None)
    assert roles_for(CompanyType.LLC) == (PartyRole.MEMBER, PartyRole.MANAGING_MEMBER)
    assert PartyRole.SHAREHOLDER in roles_for(CompanyType.S_CORP)


def test_fill_and_clear_track_filled_fields():
    draft = FormationDraft()
    draft.fill("share_structure", STANDARD_SHARE_STRUCTURE)
    draft.fill("base_name", "")
    assert draft.is_filled("base_name")
    assert draft.is_filled("share_structure")

    draft.clear("share_structure")
    assert draft.share_structure is None
    assert not draft.is_filled("share_structure")


def test_clear_list_field_gets_fresh_default():
    draft = FormationDraft()
    draft.fill("parties", [_party("Jane Doe", "100")])
    draft.clear("parties")
    assert draft.parties == []
    other = FormationDraft()
    other.parties.append(_party("John Roe", "100"))
    assert draft.parties == []


def test_ownership_is_recomputed_from_parties():
    draft = FormationDraft()
    draft.fill("parties", [_party("Jane Doe", "50"), _party("John Roe", "49.995")])
    assert draft.total_ownership() == Decimal("99.995")
    assert draft.ownership_balanced()

    draft.parties.pop()
    assert draft.total_ownership() == Decimal("50")
    assert not draft.ownership_balanced()


def test_full_company_name():
    draft = FormationDraft(base_name="Acme", entity_ending="Inc.")
    assert draft.full_company_name == "Acme Inc."
    assert FormationDraft().full_company_name == ""


def _llc_draft() -> FormationDraft:
    draft = FormationDraft()
    draft.fill("jurisdiction", Jurisdiction.DE)
    draft.fill("company_type", CompanyType.LLC)
    draft.fill("entity_ending", "LLC")
    draft.fill("base_name", "Acme")
    draft.fill("registered_agent", RECOMMENDED_AGENT.model_copy(deep=True))
    draft.fill("parties", [_party("Jane Doe", "100")])
    draft.fill("authorized_signer", AuthorizedSigner(party_index=0, name="Jane Doe", title="Managing Member"))
    return draft


def test_complete_llc_draft_has_no_gaps():
    assert _llc_draft().incomplete_fields() == []


def test_corporation_without_share_structure_is_incomplete():
    draft = _llc_draft()
    draft.fill("company_type", CompanyType.C_CORP)
    draft.fill("entity_ending", "Inc.")
    draft.parties[0].role = PartyRole.SHAREHOLDER
    assert draft.incomplete_fields() == ["share_structure"]

    draft.fill("share_structure", STANDARD_SHARE_STRUCTURE)
    assert draft.incomplete_fields() == []


def test_unbalanced_or_mismatched_parties_are_incomplete():
    draft = _llc_draft()
    draft.fill("parties", [_party("Jane Doe", "60"), _party("John Roe", "30")])
    assert draft.incomplete_fields() == ["parties"]

    # Member roles under a corporation
    draft = _llc_draft()
    draft.fill("company_type", CompanyType.S_CORP)
    draft.fill("entity_ending", "Inc.")
    draft.fill("share_structure", STANDARD_SHARE_STRUCTURE)
    assert draft.incomplete_fields() == ["parties"]


def test_missing_fields_reported_in_step_order():
    draft = FormationDraft()
    draft.fill("jurisdiction", Jurisdiction.DE)
    draft.fill("company_type", CompanyType.C_CORP)
    assert draft.incomplete_fields() == [
        "entity_ending",
        "base_name",
        "registered_agent",
        "share_structure",
        "parties",
        "authorized_signer",
    ]


def test_signer_pointing_past_the_parties_is_incomplete():
    draft = _llc_draft()
    draft.fill("authorized_signer", AuthorizedSigner(party_index=3, name="Gone", title="Managing Member"))
    assert draft.incomplete_fields() == ["authorized_signer"]
