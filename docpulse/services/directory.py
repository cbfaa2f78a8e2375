"""
docpulse.services.directory — Team & User Name Lookup
======================================================

Team and member management live outside this engine.  Reports only need
display names and an existence check, so they depend on this narrow
protocol; production wires in an adapter over the account service, tests
use :class:`StaticDirectory`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


class TeamDirectory(Protocol):
    """Name lookup for teams and users.  ``None`` means unknown."""

    def team_name(self, team_id: str) -> str | None: ...

    def user_name(self, user_id: str) -> str | None: ...


@dataclass
class StaticDirectory:
    """In-memory :class:`TeamDirectory` backed by plain dicts."""

    teams: dict[str, str] = field(default_factory=dict)
    users: dict[str, str] = field(default_factory=dict)

    def team_name(self, team_id: str) -> str | None:
        return self.teams.get(team_id)

    def user_name(self, user_id: str) -> str | None:
        return self.users.get(user_id)
