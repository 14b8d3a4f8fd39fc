# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""School data access for assistant tools.

The data tools never query storage themselves; they go through a
SchoolDirectory whose every method takes the organization ID first.
Records belonging to another organization are invisible: lookups
return None and listings skip them.

InMemorySchoolDirectory backs development and tests. Production wires
an implementation over the school management database.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Protocol, Sequence

from src.utils.datetime import ensure_utc


@dataclass(frozen=True)
class Member:
    """A student (or other member) of an organization."""

    id: str
    organization_id: str
    first_name: str
    last_name: str
    group_id: str | None = None
    status: str = "active"
    date_of_birth: date | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "group_id": self.group_id,
            "status": self.status,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
        }


@dataclass(frozen=True)
class Group:
    """A class, team or other grouping of members."""

    id: str
    organization_id: str
    name: str


@dataclass(frozen=True)
class Grade:
    member_id: str
    organization_id: str
    subject: str
    score: float
    recorded_at: datetime
    assignment_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "score": self.score,
            "date_recorded": self.recorded_at.isoformat(),
            "assignment_name": self.assignment_name,
        }


@dataclass(frozen=True)
class CalendarEvent:
    id: str
    organization_id: str
    title: str
    event_date: datetime
    event_type: str = "event"
    description: str | None = None
    location: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        del data["organization_id"]
        data["event_date"] = self.event_date.isoformat()
        return data


@dataclass(frozen=True)
class Assignment:
    id: str
    organization_id: str
    title: str
    due_date: datetime
    subject: str | None = None
    status: str = "pending"
    description: str | None = None
    points_possible: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        del data["organization_id"]
        data["due_date"] = self.due_date.isoformat()
        return data


class SchoolDirectory(Protocol):
    """Organization-scoped read access to school data."""

    async def list_members(
        self,
        organization_id: str,
        group_id: str | None = None,
        include_inactive: bool = False,
        limit: int = 50,
    ) -> list[Member]: ...

    async def get_member(self, organization_id: str, member_id: str) -> Member | None: ...

    async def get_group(self, organization_id: str, group_id: str) -> Group | None: ...

    async def list_grades(
        self,
        organization_id: str,
        member_ids: Sequence[str],
        since: datetime,
        subject: str | None = None,
    ) -> list[Grade]:
        """Grades recorded since ``since``, newest first."""
        ...

    async def list_events(
        self,
        organization_id: str,
        start: datetime,
        end: datetime,
        limit: int = 50,
    ) -> list[CalendarEvent]:
        """Events within [start, end], in date order."""
        ...

    async def list_assignments(
        self,
        organization_id: str,
        due_before: datetime,
        status: str | None = None,
        subject: str | None = None,
        limit: int = 50,
    ) -> list[Assignment]:
        """Assignments due on or before ``due_before``, soonest first."""
        ...


@dataclass
class InMemorySchoolDirectory:
    """SchoolDirectory over plain lists.

    Example:
        directory = InMemorySchoolDirectory(
            members=[Member("m1", "org-1", "Thandi", "Nkosi", group_id="g1")],
            groups=[Group("g1", "org-1", "Grade R")],
        )
    """

    members: list[Member] = field(default_factory=list)
    groups: list[Group] = field(default_factory=list)
    grades: list[Grade] = field(default_factory=list)
    events: list[CalendarEvent] = field(default_factory=list)
    assignments: list[Assignment] = field(default_factory=list)

    async def list_members(
        self,
        organization_id: str,
        group_id: str | None = None,
        include_inactive: bool = False,
        limit: int = 50,
    ) -> list[Member]:
        found = [
            m
            for m in self.members
            if m.organization_id == organization_id
            and (group_id is None or m.group_id == group_id)
            and (include_inactive or m.is_active)
        ]
        return found[:limit]

    async def get_member(self, organization_id: str, member_id: str) -> Member | None:
        for member in self.members:
            if member.id == member_id and member.organization_id == organization_id:
                return member
        return None

    async def get_group(self, organization_id: str, group_id: str) -> Group | None:
        for group in self.groups:
            if group.id == group_id and group.organization_id == organization_id:
                return group
        return None

    async def list_grades(
        self,
        organization_id: str,
        member_ids: Sequence[str],
        since: datetime,
        subject: str | None = None,
    ) -> list[Grade]:
        wanted = set(member_ids)
        since = ensure_utc(since)
        found = [
            g
            for g in self.grades
            if g.organization_id == organization_id
            and g.member_id in wanted
            and ensure_utc(g.recorded_at) >= since
            and (subject is None or g.subject == subject)
        ]
        return sorted(found, key=lambda g: g.recorded_at, reverse=True)

    async def list_events(
        self,
        organization_id: str,
        start: datetime,
        end: datetime,
        limit: int = 50,
    ) -> list[CalendarEvent]:
        start, end = ensure_utc(start), ensure_utc(end)
        found = [
            e
            for e in self.events
            if e.organization_id == organization_id and start <= ensure_utc(e.event_date) <= end
        ]
        return sorted(found, key=lambda e: e.event_date)[:limit]

    async def list_assignments(
        self,
        organization_id: str,
        due_before: datetime,
        status: str | None = None,
        subject: str | None = None,
        limit: int = 50,
    ) -> list[Assignment]:
        due_before = ensure_utc(due_before)
        found = [
            a
            for a in self.assignments
            if a.organization_id == organization_id
            and ensure_utc(a.due_date) <= due_before
            and (status is None or a.status == status)
            and (subject is None or a.subject == subject)
        ]
        return sorted(found, key=lambda a: a.due_date)[:limit]
