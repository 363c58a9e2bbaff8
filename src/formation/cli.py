"""`formation` console entry point."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional, Sequence

from common.agent_client import NameCheckClient
from common.config import Settings
from common.logging_config import setup_logging
from session.encryption import DecryptionAuthError, EncryptedStore, MalformedBlobError
from session.store import PersistenceError, SessionManager, SessionNotFoundError

from .coordinator import BackgroundTaskCoordinator, NameChecker
from .flow import FlowController, FlowResult, FlowSettings, FlowStatus
from .prompts import Choice, Prompter, QuestionaryPrompter, UserCancelled, confirm, password, select


logger = logging.getLogger(__name__)

EXIT_CONFIRMED = 0
EXIT_ABANDONED = 1
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="formation", description="Company formation wizard")
    parser.add_argument("--log-level", default=None, help="Override FORMATION_LOG_LEVEL")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("start", help="Start a new formation session")
    resume = sub.add_parser("resume", help="Resume a saved session")
    resume.add_argument("session_id", nargs="?", help="Session to resume; pick from a list when omitted")
    sub.add_parser("sessions", help="List saved sessions")
    return parser


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    prompter: Optional[Prompter] = None,
    checker: Optional[NameChecker] = None,
    crypto: Optional[EncryptedStore] = None,
) -> int:
    args = build_parser().parse_args(argv)
    command = args.command or "start"

    try:
        settings = Settings.from_env()
    except RuntimeError as ex:
        print(f"Configuration error: {ex}", file=sys.stderr)
        return EXIT_ERROR
    setup_logging(args.log_level or settings.log_level, settings.log_file)

    prompter = prompter or QuestionaryPrompter()
    try:
        passphrase = settings.session_passphrase or prompter.ask(
            password("passphrase", "Session passphrase")
        )
    except UserCancelled:
        return EXIT_ABANDONED
    if not passphrase:
        prompter.notify("A passphrase is required to protect saved sessions.", "error")
        return EXIT_ERROR
    sessions = SessionManager(settings.session_dir, passphrase, crypto=crypto)

    if command == "sessions":
        return _list_sessions(sessions, prompter)

    own_client: Optional[NameCheckClient] = None
    if checker is None:
        own_client = NameCheckClient(
            settings.api_base_url,
            api_key=settings.api_key,
            timeout=settings.request_timeout,
            max_attempts=settings.max_attempts,
        )
        checker = own_client
    coordinator = BackgroundTaskCoordinator(checker)
    flow_settings = FlowSettings(
        review_wait_timeout=settings.review_wait_timeout,
        poll_interval=settings.poll_interval,
    )
    try:
        controller = _build_controller(
            command, getattr(args, "session_id", None), sessions, coordinator, prompter, flow_settings
        )
        if controller is None:
            return EXIT_ERROR
        return _report(controller.run(), prompter)
    except UserCancelled:
        return EXIT_ABANDONED
    finally:
        coordinator.shutdown()
        if own_client is not None:
            own_client.close()


def _build_controller(
    command: str,
    session_id: Optional[str],
    sessions: SessionManager,
    coordinator: BackgroundTaskCoordinator,
    prompter: Prompter,
    flow_settings: FlowSettings,
) -> Optional[FlowController]:
    def fresh() -> FlowController:
        new_id = SessionManager.new_session_id()
        logger.info("Starting session %s", new_id)
        return FlowController(
            new_id, sessions=sessions, coordinator=coordinator, prompter=prompter, settings=flow_settings
        )

    if command == "start":
        return fresh()

    try:
        if session_id is None:
            session_id = _pick_session(sessions, prompter)
            if session_id is None:
                return None
        record = sessions.load(session_id)
        return FlowController.resume_from(
            record, sessions=sessions, coordinator=coordinator, prompter=prompter, settings=flow_settings
        )
    except SessionNotFoundError:
        prompter.notify(f"No saved session named {session_id}. Run `formation sessions` to list them.", "error")
        return None
    except ValueError as ex:
        prompter.notify(str(ex), "error")
        return None
    except (DecryptionAuthError, MalformedBlobError) as ex:
        logger.warning("Cannot open session %s: %s", session_id, ex)
        if isinstance(ex, DecryptionAuthError):
            prompter.notify(
                "That session could not be decrypted. Is the passphrase correct, or was the file modified?", "error"
            )
        else:
            prompter.notify("That session file is damaged and cannot be resumed.", "error")
        if prompter.ask(confirm("start_fresh", "Start a new session instead?", default=True)):
            return fresh()
        return None
    except PersistenceError as ex:
        prompter.notify(f"Could not read saved sessions: {ex}", "error")
        return None


def _pick_session(sessions: SessionManager, prompter: Prompter) -> Optional[str]:
    summaries = sessions.list()
    if not summaries:
        prompter.notify("There are no saved sessions. Run `formation start` to begin.", "warning")
        return None
    choices = [
        Choice(f"{s.session_id} (updated {s.updated_at:%Y-%m-%d %H:%M} UTC)", s.session_id) for s in summaries
    ]
    return prompter.ask(select("resume_session", "Which session?", choices, default=summaries[0].session_id))


def _list_sessions(sessions: SessionManager, prompter: Prompter) -> int:
    try:
        summaries = sessions.list()
    except PersistenceError as ex:
        prompter.notify(f"Could not read saved sessions: {ex}", "error")
        return EXIT_ERROR
    if not summaries:
        prompter.notify("No saved sessions.", "muted")
    for s in summaries:
        prompter.notify(
            f"{s.session_id}  created {s.created_at:%Y-%m-%d %H:%M}  updated {s.updated_at:%Y-%m-%d %H:%M}"
        )
    return EXIT_CONFIRMED


def result_payload(result: FlowResult) -> dict:
    """JSON-ready view of a confirmed draft for document generation."""
    return {
        "session_id": result.session_id,
        "company_name": result.draft.full_company_name,
        "draft": result.draft.model_dump(mode="json", exclude={"filled"}),
        "name_check": result.name_check.model_dump(mode="json") if result.name_check else None,
        "name_check_override": result.name_check_override,
    }


def _report(result: FlowResult, prompter: Prompter) -> int:
    if result.status is FlowStatus.CONFIRMED:
        prompter.notify(f"{result.draft.full_company_name} is ready for filing.", "success")
        print(json.dumps(result_payload(result), indent=2))
        return EXIT_CONFIRMED

    if result.save_error:
        prompter.notify(f"Your progress could not be saved: {result.save_error}", "error")
    else:
        prompter.notify(f"Progress saved. Resume with: formation resume {result.session_id}", "info")
    return EXIT_ABANDONED


__all__: List[str] = ["build_parser", "main", "result_payload"]
