"""
Permission evaluation for tables, rows and pages.

This module provides:
- Identity: the resolved caller (anonymous or an authenticated user)
- GroupSet: parsed form of the JSON ``read_groups``/``write_groups`` columns
- PermissionEvaluator: allow/deny decisions over a group set

Rules:
- An empty or absent group set is unrestricted
- Otherwise the caller needs membership in at least one listed group
- Membership questions go to a MembershipResolver; the reserved ``everyone``
  group is universal only because the resolver says so

Raw JSON strings never reach the evaluator. They are parsed with
``GroupSet.parse`` at the storage boundary, which raises
``InvalidGroupSetError`` for anything that is not a JSON array of names.
"""

import json
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from stingray.core.exceptions import AccessDeniedError, InvalidGroupSetError


@dataclass(frozen=True)
class Identity:
    """Caller identity as resolved from the session cookie."""

    user_id: int | None = None
    username: str | None = None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None


ANONYMOUS = Identity()


@dataclass(frozen=True)
class GroupSet:
    """Ordered, duplicate-free set of group names."""

    groups: tuple[str, ...] = ()

    @classmethod
    def of(cls, groups: Iterable[str]) -> "GroupSet":
        names = list(groups)
        seen: dict[str, None] = {}
        for group in names:
            name = group.strip()
            if not name:
                raise InvalidGroupSetError(json.dumps(names), "group names must not be blank")
            seen.setdefault(name, None)
        return cls(tuple(seen))

    @classmethod
    def parse(cls, raw: str | None) -> "GroupSet":
        """
        Parse the stored JSON form.

        ``None``, an empty string, ``null`` and ``[]`` all mean unrestricted.

        Raises:
            InvalidGroupSetError: Not JSON, not an array, or not all strings
        """
        if raw is None or not raw.strip():
            return cls()

        try:
            value = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidGroupSetError(raw, str(e)) from e

        if value is None:
            return cls()
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise InvalidGroupSetError(raw, "expected a JSON array of group names")
        if any(not item.strip() for item in value):
            raise InvalidGroupSetError(raw, "group names must not be blank")

        return cls.of(value)

    def to_json(self) -> str:
        return json.dumps(list(self.groups))

    def __iter__(self) -> Iterator[str]:
        return iter(self.groups)

    def __len__(self) -> int:
        return len(self.groups)

    def __contains__(self, group: object) -> bool:
        return group in self.groups


class Operation(str, Enum):
    READ = "read"
    WRITE = "write"


class MembershipResolver(Protocol):
    """Answers whether an identity belongs to a group."""

    async def is_member(self, identity: Identity, group: str) -> bool: ...


class PermissionEvaluator:
    """
    Decide read/write access from a group set.

    Errors raised by the resolver (e.g. storage unavailable) propagate
    unchanged; they are never turned into a deny or an allow.

    Example:
        evaluator = PermissionEvaluator(GroupMembershipResolver(db))
        if await evaluator.can_write(identity, table.write_group_set()):
            ...
    """

    def __init__(self, resolver: MembershipResolver):
        self.resolver = resolver

    async def can_read(self, identity: Identity, group_set: GroupSet | None) -> bool:
        return await self._allowed(identity, group_set)

    async def can_write(self, identity: Identity, group_set: GroupSet | None) -> bool:
        return await self._allowed(identity, group_set)

    async def require(
        self,
        operation: Operation,
        identity: Identity,
        group_set: GroupSet | None,
        resource: str,
    ) -> None:
        """
        Raise AccessDeniedError unless the operation is allowed.

        Args:
            operation: READ or WRITE
            identity: Caller identity
            group_set: Parsed read or write group set matching the operation
            resource: Resource name used in the error (table name, page slug)
        """
        if operation is Operation.READ:
            allowed = await self.can_read(identity, group_set)
        else:
            allowed = await self.can_write(identity, group_set)
        if not allowed:
            raise AccessDeniedError(operation.value, resource)

    async def _allowed(self, identity: Identity, group_set: GroupSet | None) -> bool:
        if not group_set:
            return True
        for group in group_set:
            if await self.resolver.is_member(identity, group):
                return True
        return False
