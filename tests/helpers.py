"""Test doubles and data builders shared across test modules."""

from sentinel.core.security import encrypt_value
from sentinel.models.subscription import Subscription
from sentinel.models.workspace import Workspace
from sentinel.services.directory import PRESENCE_AWAY, GuestRecord


class FakeDirectory:
    """In-memory stand-in for DirectoryClient with call counters."""

    def __init__(self) -> None:
        self.guests: dict[str, list[GuestRecord]] = {}
        self.presence: dict[str, str] = {}
        self.messages: dict[str, float] = {}
        self.failing_tokens: set[str] = set()
        self.failing_recipients: set[str] = set()
        self.presence_calls = 0
        self.message_calls = 0
        self.sent: list[tuple[str, str, list[dict]]] = []

    async def list_guest_accounts(self, token: str) -> list[GuestRecord]:
        if token in self.failing_tokens:
            raise RuntimeError(f"directory down for {token}")
        return list(self.guests.get(token, []))

    async def get_presence(self, token: str, user_id: str) -> str:
        self.presence_calls += 1
        return self.presence.get(user_id, PRESENCE_AWAY)

    async def get_recent_message_timestamp(self, token: str, user_id: str, oldest: float):
        self.message_calls += 1
        ts = self.messages.get(user_id)
        return ts if ts is not None and ts > oldest else None

    async def send_direct_message(self, token: str, user_id: str, blocks: list[dict], text: str):
        if user_id in self.failing_recipients:
            raise RuntimeError("chat.postMessage failed")
        self.sent.append((token, user_id, blocks))
        return {"ok": True}


async def create_workspace(
    session_factory,
    *,
    team_id: str = "T001",
    token: str = "xoxp-token",
    plan: str = "starter",
    status: str | None = "active",
    recipients: list[str] | None = None,
    is_active: bool = True,
    customer_id: str | None = None,
) -> Workspace:
    """Insert a workspace (and its subscription unless ``status`` is None)."""
    async with session_factory() as sess:
        ws = Workspace(
            slack_team_id=team_id,
            team_name=f"Team {team_id}",
            access_token=encrypt_value(token),
            installed_by="UADMIN",
            alert_recipients=recipients or [],
            plan_type=plan,
            is_active=is_active,
        )
        sess.add(ws)
        await sess.flush()
        if status is not None:
            sess.add(
                Subscription(
                    workspace_id=ws.id,
                    stripe_customer_id=customer_id or f"cus_{team_id}",
                    stripe_subscription_id=f"sub_{team_id}",
                    plan=plan,
                    status=status,
                )
            )
        await sess.commit()
        await sess.refresh(ws)
        return ws


def make_guests(prefix: str, count: int, profile_updated_at: int = 0) -> list[GuestRecord]:
    return [
        GuestRecord(id=f"{prefix}{i}", profile_updated_at=profile_updated_at)
        for i in range(count)
    ]
