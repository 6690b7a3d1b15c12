"""Alert payloads for inactive guests.

Pure functions only: the action ids and button values built here are what
the interaction callback parses back, so the two must stay in sync.
"""

from __future__ import annotations

from sentinel.models.guest_audit import GuestAction

DEACTIVATE_ACTION_ID = "deactivate_guest_action"
IGNORE_ACTION_ID = "ignore_guest_action"

_DEACTIVATE_PREFIX = "deactivate_"
_IGNORE_PREFIX = "ignore_"

_ACTIONS: dict[str, tuple[str, GuestAction]] = {
    DEACTIVATE_ACTION_ID: (_DEACTIVATE_PREFIX, GuestAction.DEACTIVATION_LOGGED),
    IGNORE_ACTION_ID: (_IGNORE_PREFIX, GuestAction.IGNORED),
}


def alert_fallback_text(guest_id: str) -> str:
    return f"Inactive guest <@{guest_id}> detected"


def build_inactive_guest_alert(guest_id: str, monthly_cost: float) -> list[dict]:
    """Block Kit message with "log deactivation" and "ignore" buttons."""
    yearly_cost = monthly_cost * 12
    return [
        {
            "type": "header",
            "text": {"type": "plain_text", "text": "Inactive guest detected", "emoji": True},
        },
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": (
                    f"<@{guest_id}> has shown no activity in the last 30 days.\n"
                    f"Estimated cost: *${monthly_cost:,.2f}/month* "
                    f"(${yearly_cost:,.2f}/year)."
                ),
            },
        },
        {"type": "divider"},
        {
            "type": "actions",
            "elements": [
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Log deactivation", "emoji": True},
                    "style": "danger",
                    "action_id": DEACTIVATE_ACTION_ID,
                    "value": f"{_DEACTIVATE_PREFIX}{guest_id}",
                },
                {
                    "type": "button",
                    "text": {"type": "plain_text", "text": "Ignore", "emoji": True},
                    "action_id": IGNORE_ACTION_ID,
                    "value": f"{_IGNORE_PREFIX}{guest_id}",
                },
            ],
        },
    ]


def parse_action(action_id: str, value: str) -> tuple[GuestAction, str] | None:
    """Recover ``(disposition, guest_id)`` from a button click, or None."""
    entry = _ACTIONS.get(action_id)
    if entry is None:
        return None
    prefix, disposition = entry
    if not value.startswith(prefix) or len(value) == len(prefix):
        return None
    return disposition, value[len(prefix):]
