"""Prompt boundary between the wizard and the terminal."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Protocol, Sequence, Union

import questionary
from questionary import Style

from common.validators import ValidationResult


STYLE = Style(
    [
        ("qmark", "fg:cyan bold"),
        ("question", "bold"),
        ("answer", "fg:green bold"),
        ("pointer", "fg:cyan bold"),
        ("highlighted", "fg:cyan bold"),
        ("selected", "fg:green"),
    ]
)


class UserCancelled(Exception):
    """The user quit the wizard (Ctrl-C, EOF or an explicit exit choice)."""


class QuestionKind(str, Enum):
    SELECT = "select"
    TEXT = "text"
    CONFIRM = "confirm"
    PASSWORD = "password"


@dataclass(frozen=True)
class Choice:
    label: str
    value: Any


Validator = Callable[[str], ValidationResult]


@dataclass(frozen=True)
class Question:
    """One question asked of the user.

    `key` is a stable identifier for the question; renderers ignore it.
    """

    key: str
    kind: QuestionKind
    message: str
    choices: Sequence[Choice] = field(default_factory=tuple)
    default: Any = None
    validate: Optional[Validator] = None

    def check(self, answer: str) -> Union[bool, str]:
        """questionary-style validation result: True or an error message."""
        if self.validate is None:
            return True
        result = self.validate(answer)
        return True if result.valid else (result.message or "Invalid value")


def select(key: str, message: str, choices: Sequence[Choice], default: Any = None) -> Question:
    return Question(key, QuestionKind.SELECT, message, tuple(choices), default)


def text(key: str, message: str, *, default: Optional[str] = None, validate: Optional[Validator] = None) -> Question:
    return Question(key, QuestionKind.TEXT, message, default=default, validate=validate)


def confirm(key: str, message: str, *, default: bool = True) -> Question:
    return Question(key, QuestionKind.CONFIRM, message, default=default)


def password(key: str, message: str) -> Question:
    return Question(key, QuestionKind.PASSWORD, message)


class Prompter(Protocol):
    def ask(self, question: Question) -> Any:
        """Return the answer, or raise UserCancelled."""

    def notify(self, message: str, level: str = "info") -> None:
        ...


_LEVEL_STYLES = {
    "info": "",
    "success": "fg:green",
    "warning": "fg:yellow",
    "error": "fg:red bold",
    "muted": "fg:gray",
}


class QuestionaryPrompter:
    """Renders questions with questionary."""

    def ask(self, question: Question) -> Any:
        if question.kind is QuestionKind.SELECT:
            choices = [questionary.Choice(c.label, c.value) for c in question.choices]
            default = next((c for c in choices if c.value == question.default), None)
            answer = questionary.select(
                question.message, choices=choices, default=default, style=STYLE
            ).ask()
        elif question.kind is QuestionKind.CONFIRM:
            answer = questionary.confirm(
                question.message, default=bool(question.default), style=STYLE
            ).ask()
        elif question.kind is QuestionKind.PASSWORD:
            answer = questionary.password(question.message, style=STYLE).ask()
        else:
            answer = questionary.text(
                question.message,
                default=question.default or "",
                validate=question.check,
                style=STYLE,
            ).ask()
        if answer is None:
            raise UserCancelled()
        return answer

    def notify(self, message: str, level: str = "info") -> None:
        questionary.print(message, style=_LEVEL_STYLES.get(level, ""))


__all__ = [
    "Choice",
    "Prompter",
    "Question",
    "QuestionKind",
    "QuestionaryPrompter",
    "STYLE",
    "UserCancelled",
    "confirm",
    "password",
    "select",
    "text",
]
