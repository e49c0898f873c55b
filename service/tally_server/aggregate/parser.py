"""
Event extraction from bot message text.

The bot posts two kinds of notices into the chat:

    🎉Neuer Nutzer gestartet!
    ID: 123456
    Name: Alice

    Aktion: 💰 Paypal für 10€

Parsing is split in two steps so the policy is explicit:
- extract() finds which sub-patterns are present
- gate() applies the policy (both required, or each on its own)

Invariants:
    - Parsing never raises; unmatched text yields NoEvent
    - Amounts are not range checked
    - With require_both, only RegistrationAndAction passes the gate
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union

REGISTRATION_PATTERN = re.compile(r"🎉Neuer Nutzer gestartet!\nID: (.*)\nName: (.*)")
ACTION_PATTERN = re.compile(r"Aktion: (?:🎟️Gutschein|💰 Paypal|🪙 Krypto) für (\d+)€")


@dataclass(frozen=True)
class NoEvent:
    """Text carries no recognized event."""


@dataclass(frozen=True)
class Registration:
    """A user started the bot."""

    id: str
    name: str


@dataclass(frozen=True)
class Action:
    """A payout action with its amount."""

    amount: int


@dataclass(frozen=True)
class RegistrationAndAction:
    """Registration and action notices in the same payload."""

    id: str
    name: str
    amount: int

    @property
    def registration(self) -> Registration:
        return Registration(id=self.id, name=self.name)

    @property
    def action(self) -> Action:
        return Action(amount=self.amount)


ParsedEvent = Union[NoEvent, Registration, Action, RegistrationAndAction]


def _match_registration(text: str) -> Optional[Registration]:
    match = REGISTRATION_PATTERN.search(text)
    if not match:
        return None
    user_id = match.group(1).strip()
    if not user_id:
        return None
    return Registration(id=user_id, name=match.group(2).strip())


def _match_action(text: str) -> Optional[Action]:
    match = ACTION_PATTERN.search(text)
    if not match:
        return None
    return Action(amount=int(match.group(1)))


def extract(text: str) -> ParsedEvent:
    """Find the sub-patterns present in text, without any policy."""
    registration = _match_registration(text)
    action = _match_action(text)

    if registration and action:
        return RegistrationAndAction(
            id=registration.id, name=registration.name, amount=action.amount
        )
    if registration:
        return registration
    if action:
        return action
    return NoEvent()


def gate(event: ParsedEvent, require_both: bool = True) -> ParsedEvent:
    """Apply the application policy to an extracted event.

    Args:
        event: Result of extract()
        require_both: Only accept payloads carrying both sub-patterns

    Returns:
        The event if it may be applied, NoEvent otherwise
    """
    if require_both and not isinstance(event, RegistrationAndAction):
        return NoEvent()
    return event


def parse(text: str, require_both: bool = True) -> ParsedEvent:
    """Extract and gate the event carried by text."""
    return gate(extract(text), require_both=require_both)
