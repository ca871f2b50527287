"""CashTrack value type - one client-report / admin-confirm handshake."""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class CashTrack:
    """
    Cash payment claimed by the client and, separately, confirmed by an admin.

    Persisted through a SQLAlchemy composite as three columns. Instances are
    immutable; assign a new one to change the row.
    """

    claimed: bool = False
    confirmed_at: Optional[datetime] = None
    confirmed_by: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.confirmed_at is not None

    @property
    def satisfied(self) -> bool:
        """Nothing blocks activation: either no cash claim, or it is confirmed."""
        return not self.claimed or self.confirmed

    def claim(self) -> "CashTrack":
        return CashTrack(claimed=True)

    def confirm(self, admin_id: str, at: datetime) -> "CashTrack":
        return replace(self, confirmed_at=at, confirmed_by=admin_id)
