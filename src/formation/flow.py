from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from session.encryption import MalformedBlobError
from session.store import PersistenceError, SessionManager, SessionRecord

from .coordinator import BackgroundTaskCoordinator, StateConflictError, TaskHandle, TaskSnapshot, TaskStatus
from .models import CompanyType, FormationDraft, NameCheckOutcome, NameStatus, requires_share_structure
from .prompts import Choice, Prompter, UserCancelled, confirm, select
from .steps import COLLECTORS, render_summary


logger = logging.getLogger(__name__)


class Step(IntEnum):
    SELECT_STATE = 0
    SELECT_COMPANY_TYPE = 1
    SELECT_ENTITY_ENDING = 2
    ENTER_BASE_NAME = 3
    COLLECT_REGISTERED_AGENT = 4
    COLLECT_SHARE_STRUCTURE = 5
    COLLECT_PARTIES = 6
    SELECT_AUTHORIZED_SIGNER = 7
    REVIEW_AND_CONFIRM = 8


STEP_FIELDS: Dict[Step, str] = {
    Step.SELECT_STATE: "jurisdiction",
    Step.SELECT_COMPANY_TYPE: "company_type",
    Step.SELECT_ENTITY_ENDING: "entity_ending",
    Step.ENTER_BASE_NAME: "base_name",
    Step.COLLECT_REGISTERED_AGENT: "registered_agent",
    Step.COLLECT_SHARE_STRUCTURE: "share_structure",
    Step.COLLECT_PARTIES: "parties",
    Step.SELECT_AUTHORIZED_SIGNER: "authorized_signer",
}
FIELD_STEPS: Dict[str, Step] = {field: step for step, field in STEP_FIELDS.items()}

# Editing a key invalidates the listed fields, which are then re-collected
DEPENDENTS: Dict[str, Tuple[str, ...]] = {
    "jurisdiction": ("entity_ending",),
    "company_type": ("entity_ending", "share_structure", "parties", "authorized_signer"),
    "parties": ("authorized_signer",),
}

# Company-type dependents that only change across the LLC / corporation boundary
_BOUNDARY_DEPENDENTS: FrozenSet[str] = frozenset({"share_structure", "parties", "authorized_signer"})

# Re-collected with their previous answers as defaults instead of being cleared
_PREFILLED_DEPENDENTS: FrozenSet[str] = frozenset({"parties"})

NAME_FIELDS: FrozenSet[str] = frozenset({"jurisdiction", "company_type", "entity_ending", "base_name"})

_FIELD_LABELS = {
    "jurisdiction": "State",
    "company_type": "Company type",
    "entity_ending": "Entity ending",
    "base_name": "Company name",
    "registered_agent": "Registered agent",
    "share_structure": "Share structure",
    "parties": "Members / shareholders",
    "authorized_signer": "Authorized signer",
}

SNAPSHOT_VERSION = 1


@dataclass(frozen=True)
class FlowSettings:
    review_wait_timeout: float = 30.0
    poll_interval: float = 2.0


class FlowStatus(str, Enum):
    CONFIRMED = "confirmed"
    ABANDONED = "abandoned"


@dataclass
class FlowResult:
    status: FlowStatus
    draft: FormationDraft
    session_id: str
    name_check: Optional[NameCheckOutcome] = None
    name_check_override: bool = False
    save_error: Optional[str] = None


class _Snapshot(BaseModel):
    """What a session file's encrypted payload decodes to."""

    version: int = SNAPSHOT_VERSION
    draft: FormationDraft
    name_check: Optional[NameCheckOutcome] = None
    name_check_pending: bool = False


def dependents_of(field: str, previous_type: Optional[CompanyType], current_type: Optional[CompanyType]) -> List[str]:
    """Fields invalidated by editing `field`.

    Share structure, party roles and the signer's title only depend on
    company type when the edit crosses the LLC / corporation boundary.
    """
    deps = list(DEPENDENTS.get(field, ()))
    if field == "company_type" and requires_share_structure(previous_type) == requires_share_structure(current_type):
        deps = [dep for dep in deps if dep not in _BOUNDARY_DEPENDENTS]
    return deps


class FlowController:
    """
    Drives the formation wizard over a fixed sequence of steps.

    - Forward: each step's collector writes its field, the draft is saved,
      then the next step runs. Share structure is skipped for an LLC.
    - Name check: submitted in the background when the registered agent step
      starts; results are only merged by polling the coordinator.
    - Edit: from review any field can be re-collected along with the fields
      that depend on it; control then returns straight to review.
    - Review: confirmation depends on the name-check outcome.

    Nothing here reads the environment; timing comes from FlowSettings.
    """

    def __init__(
        self,
        session_id: str,
        *,
        sessions: SessionManager,
        coordinator: BackgroundTaskCoordinator,
        prompter: Prompter,
        settings: Optional[FlowSettings] = None,
        draft: Optional[FormationDraft] = None,
        step: Step = Step.SELECT_STATE,
    ) -> None:
        self.session_id = session_id
        self.draft = draft or FormationDraft()
        self._sessions = sessions
        self._coordinator = coordinator
        self._prompter = prompter
        self._settings = settings or FlowSettings()
        self._step = Step(step)
        self._handle: Optional[TaskHandle] = None
        self._outcome: Optional[NameCheckOutcome] = None
        self._save_error: Optional[str] = None
        self._save_error_reported = False

    @classmethod
    def resume_from(
        cls,
        record: SessionRecord,
        *,
        sessions: SessionManager,
        coordinator: BackgroundTaskCoordinator,
        prompter: Prompter,
        settings: Optional[FlowSettings] = None,
    ) -> "FlowController":
        """Rebuild a controller from a saved session.

        Raises DecryptionAuthError / MalformedBlobError when the payload
        cannot be opened or decoded.
        """
        payload = sessions.open(record)
        try:
            snapshot = _Snapshot.model_validate_json(payload)
        except ValidationError as ex:
            raise MalformedBlobError(f"Session {record.session_id} does not hold a wizard draft") from ex
        step = Step(min(max(record.current_step_index, 0), int(Step.REVIEW_AND_CONFIRM)))
        controller = cls(
            record.session_id,
            sessions=sessions,
            coordinator=coordinator,
            prompter=prompter,
            settings=settings,
            draft=snapshot.draft,
            step=step,
        )
        controller._outcome = snapshot.name_check
        if snapshot.name_check_pending:
            # The old task died with the previous process
            controller._submit_check()
        logger.info("Resumed session %s at %s", record.session_id, step.name)
        return controller

    @property
    def current_step(self) -> Step:
        return self._step

    @property
    def name_check(self) -> Optional[NameCheckOutcome]:
        return self._outcome

    # -------- Main loop --------
    def run(self) -> FlowResult:
        try:
            while True:
                if self._step is Step.REVIEW_AND_CONFIRM:
                    result = self._review()
                    if result is not None:
                        return result
                    continue
                self._run_step(self._step)
                self._step = Step(self._step + 1)
                self._persist()
                self._announce_completion()
        except UserCancelled:
            logger.info("Session %s cancelled by user", self.session_id)
            return self._abandon()

    def _run_step(self, step: Step) -> None:
        if step is Step.COLLECT_SHARE_STRUCTURE and not requires_share_structure(self.draft.company_type):
            self.draft.clear("share_structure")
            return
        if step is Step.COLLECT_REGISTERED_AGENT:
            self._ensure_name_check()
        COLLECTORS[STEP_FIELDS[step]](self.draft, self._prompter)

    # -------- Edit --------
    def edit_field(self, field: str) -> None:
        """Re-collect one field and everything that depends on it.

        The edit runs on a copy of the draft, which replaces the live draft
        only once every dependent has been re-collected. Cancelling part way
        leaves the previous draft untouched.
        """
        if field not in FIELD_STEPS:
            raise KeyError(field)
        working = self.draft.model_copy(deep=True)
        previous_type = working.company_type
        COLLECTORS[field](working, self._prompter)
        touched = {field}
        for dep in dependents_of(field, previous_type, working.company_type):
            touched.add(dep)
            if dep not in _PREFILLED_DEPENDENTS:
                working.clear(dep)
            if dep == "share_structure" and not requires_share_structure(working.company_type):
                continue
            COLLECTORS[dep](working, self._prompter)
        self.draft = working
        logger.info("Edited %s (re-collected %s)", field, ", ".join(sorted(touched - {field})) or "nothing else")
        if touched & NAME_FIELDS:
            self._ensure_name_check()
        self._persist()

    def _editable_fields(self) -> List[str]:
        fields = list(STEP_FIELDS.values())
        if not requires_share_structure(self.draft.company_type):
            fields.remove("share_structure")
        return fields

    # -------- Name check --------
    def _name_key(self) -> Optional[Tuple[str, str]]:
        if self.draft.jurisdiction is None or not self.draft.base_name:
            return None
        return self.draft.full_company_name, self.draft.jurisdiction.value

    def _ensure_name_check(self) -> None:
        """Submit a check unless one already covers the current name and state."""
        key = self._name_key()
        if key is None:
            return
        if self._handle is not None and (self._handle.name, self._handle.state) == key:
            return
        if (
            self._handle is None
            and self._outcome is not None
            and (self._outcome.name, self._outcome.jurisdiction) == key
        ):
            return
        self._submit_check()

    def _submit_check(self) -> None:
        key = self._name_key()
        if key is None:
            return
        self._outcome = None
        self._handle = self._coordinator.submit(*key)

    def _refresh(self, timeout: Optional[float] = None) -> None:
        if self._handle is None:
            return
        if timeout:
            snapshot = self._coordinator.wait(self._handle, timeout)
        else:
            snapshot = self._coordinator.status(self._handle)
        if snapshot.status is TaskStatus.SUPERSEDED:
            logger.warning("Name check %s was dropped, resubmitting", self._handle.task_id)
            self._submit_check()
            return
        if snapshot.status is not TaskStatus.PENDING:
            self._merge(snapshot)

    def _merge(self, snapshot: TaskSnapshot) -> None:
        if self._handle is None or snapshot.handle.task_id != self._handle.task_id:
            raise StateConflictError(f"Result of task {snapshot.handle.task_id} is not current")
        if (snapshot.handle.name, snapshot.handle.state) != self._name_key():
            raise StateConflictError(f"Result for {snapshot.handle.name!r} does not match the draft")

        if snapshot.status is TaskStatus.RESOLVED:
            result = snapshot.result
            outcome = NameCheckOutcome(
                name=snapshot.handle.name,
                jurisdiction=snapshot.handle.state,
                status=NameStatus.AVAILABLE if result.available else NameStatus.UNAVAILABLE,
                suggestions=list(result.suggestions),
                reason=result.reason,
            )
        else:
            outcome = NameCheckOutcome(
                name=snapshot.handle.name,
                jurisdiction=snapshot.handle.state,
                status=NameStatus.FAILED,
                reason=snapshot.error,
            )
        self._outcome = outcome
        self._handle = None

    def _announce_completion(self) -> None:
        handle = self._handle
        if handle is None or not self._coordinator.take_completion(handle):
            return
        self._refresh()
        outcome = self._outcome
        if outcome is None:
            return
        if outcome.status is NameStatus.AVAILABLE:
            self._prompter.notify(f"Good news: '{outcome.name}' is available.", "success")
        elif outcome.status is NameStatus.UNAVAILABLE:
            self._prompter.notify(f"'{outcome.name}' is not available. You can change it at review.", "warning")
        else:
            self._prompter.notify("The name check could not be completed. You can retry at review.", "warning")

    # -------- Review --------
    def _review(self) -> Optional[FlowResult]:
        self._ensure_name_check()
        self._refresh(self._settings.poll_interval)

        for line in render_summary(self.draft):
            self._prompter.notify(line)
        self._show_name_status()

        if self._outcome is not None and self._outcome.status is NameStatus.UNAVAILABLE:
            self._prompter.notify("Please choose a different name.", "error")
            COLLECTORS["base_name"](self.draft, self._prompter)
            self._ensure_name_check()
            self._persist()
            return None

        choices = [Choice("Confirm and finish", "confirm"), Choice("Edit a field", "edit")]
        if self._handle is not None:
            choices.append(Choice("Refresh name check", "refresh"))
        if self._outcome is not None and self._outcome.status is NameStatus.FAILED:
            choices.append(Choice("Retry name check", "retry"))
        choices.append(Choice("Save and exit", "save_exit"))
        action = self._prompter.ask(select("review_action", "What would you like to do?", choices, default="confirm"))

        if action == "confirm":
            return self._try_confirm()
        if action == "edit":
            field = self._prompter.ask(
                select(
                    "edit_field",
                    "Which field?",
                    [Choice(_FIELD_LABELS[f], f) for f in self._editable_fields()] + [Choice("Back", None)],
                )
            )
            if field is not None:
                self.edit_field(field)
        elif action == "refresh":
            self._refresh(self._settings.poll_interval)
        elif action == "retry":
            self._submit_check()
        elif action == "save_exit":
            return self._abandon()
        return None

    def _show_name_status(self) -> None:
        outcome = self._outcome
        if self._handle is not None:
            self._prompter.notify("Name availability: checking...", "muted")
        elif outcome is None:
            self._prompter.notify("Name availability: not checked", "muted")
        elif outcome.status is NameStatus.AVAILABLE:
            self._prompter.notify(f"Name availability: '{outcome.name}' is available", "success")
        elif outcome.status is NameStatus.UNAVAILABLE:
            self._prompter.notify(f"Name availability: '{outcome.name}' is taken", "error")
            if outcome.suggestions:
                self._prompter.notify("Suggestions: " + ", ".join(outcome.suggestions), "info")
        else:
            self._prompter.notify(f"Name availability: check failed ({outcome.reason})", "warning")

    def _try_confirm(self) -> Optional[FlowResult]:
        missing = self.draft.incomplete_fields()
        if missing:
            field = missing[0]
            logger.warning("Session %s cannot be confirmed, incomplete: %s", self.session_id, ", ".join(missing))
            self._prompter.notify(f"{_FIELD_LABELS[field]} is incomplete. Please finish it before confirming.", "error")
            self.edit_field(field)
            return None

        while self._handle is not None:
            self._prompter.notify("Waiting for the name check to finish...", "muted")
            self._refresh(self._settings.review_wait_timeout)
            if self._handle is None:
                break
            choice = self._prompter.ask(
                select(
                    "pending_action",
                    "The name check is still running.",
                    [
                        Choice("Keep waiting", "wait"),
                        Choice("Confirm without a name check", "override"),
                        Choice("Back to review", "back"),
                    ],
                    default="wait",
                )
            )
            if choice == "override":
                self._coordinator.cancel(self._handle)
                self._handle = None
                return self._confirm(override=True)
            if choice == "back":
                return None

        outcome = self._outcome
        if outcome is None or outcome.status is NameStatus.UNAVAILABLE:
            # Review handles the unavailable loop on its next pass
            return None
        if outcome.status is NameStatus.FAILED:
            acknowledged = self._prompter.ask(
                confirm(
                    "override_failed",
                    "Name availability could not be verified. Confirm anyway and accept the risk?",
                    default=False,
                )
            )
            if not acknowledged:
                return None
            return self._confirm(override=True)
        return self._confirm(override=False)

    # -------- Termination --------
    def _confirm(self, *, override: bool) -> FlowResult:
        try:
            self._sessions.delete(self.session_id)
        except PersistenceError as ex:
            logger.warning("Could not delete confirmed session %s: %s", self.session_id, ex)
        logger.info("Session %s confirmed (override=%s)", self.session_id, override)
        return FlowResult(
            status=FlowStatus.CONFIRMED,
            draft=self.draft,
            session_id=self.session_id,
            name_check=self._outcome,
            name_check_override=override,
        )

    def _abandon(self) -> FlowResult:
        if self._handle is not None:
            # Pending stays recorded so resume starts a fresh check
            self._coordinator.cancel(self._handle)
        self._persist()
        return FlowResult(
            status=FlowStatus.ABANDONED,
            draft=self.draft,
            session_id=self.session_id,
            name_check=self._outcome,
            save_error=self._save_error,
        )

    # -------- Persistence --------
    def serialize(self) -> bytes:
        snapshot = _Snapshot(
            draft=self.draft,
            name_check=self._outcome,
            name_check_pending=self._handle is not None,
        )
        return snapshot.model_dump_json().encode("utf-8")

    def _persist(self) -> bool:
        try:
            self._sessions.save(self.session_id, self.serialize(), int(self._step))
        except PersistenceError as ex:
            self._save_error = str(ex)
            logger.warning("Progress for %s not saved: %s", self.session_id, ex)
            if not self._save_error_reported:
                self._prompter.notify(
                    "Your progress could not be saved. You can keep going, but it will be lost if you exit.",
                    "warning",
                )
                self._save_error_reported = True
            return False
        self._save_error = None
        self._save_error_reported = False
        return True


__all__ = [
    "DEPENDENTS",
    "FIELD_STEPS",
    "FlowController",
    "FlowResult",
    "FlowSettings",
    "FlowStatus",
    "NAME_FIELDS",
    "STEP_FIELDS",
    "Step",
    "dependents_of",
]
