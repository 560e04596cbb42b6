from dataclasses import dataclass
from enum import Enum

from logistics.error import Forbidden


class Role(str, Enum):
    USER = "User"
    ADMIN = "Admin"
    LOGISTICS_OFFICER = "LogisticsOfficer"
    SYSTEM_ADMIN = "SystemAdmin"

    @classmethod
    def parse(cls, value: "str | Role | None") -> "Role":
        """Resolve a stored role string, ignoring case, spaces, '_' and '-'.

        "Logistics Officer", "logistics_officer" and "LOGISTICSOFFICER" all
        map to LOGISTICS_OFFICER. Anything unrecognised is a plain USER.
        """
        if isinstance(value, Role):
            return value
        key = "".join(ch for ch in (value or "") if ch not in " _-").lower()
        for role in cls:
            if role.value.lower() == key:
                return role
        return cls.USER


class Capability(str, Enum):
    APPROVE = "approve"
    FULFILL = "fulfill"
    EXECUTE_REPAIR = "execute_repair"
    MANAGE_STOCK = "manage_stock"
    ADMINISTER = "administer"


CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.USER: frozenset(),
    Role.ADMIN: frozenset({Capability.APPROVE, Capability.EXECUTE_REPAIR}),
    Role.LOGISTICS_OFFICER: frozenset(
        {Capability.FULFILL, Capability.EXECUTE_REPAIR, Capability.MANAGE_STOCK}
    ),
    Role.SYSTEM_ADMIN: frozenset({Capability.ADMINISTER}),
}


def roles_with(*capabilities: Capability) -> list[Role]:
    """Roles holding at least one of ``capabilities``, in declaration order."""
    wanted = set(capabilities)
    return [role for role in Role if CAPABILITIES[role] & wanted]


@dataclass(frozen=True)
class Actor:
    id: int
    role: Role

    @classmethod
    def of(cls, user_id: int, role: "str | Role | None") -> "Actor":
        return cls(id=user_id, role=Role.parse(role))

    def can(self, capability: Capability) -> bool:
        return capability in CAPABILITIES[self.role]

    def require(self, action: str, *capabilities: Capability) -> None:
        """Raise Forbidden unless the actor holds one of ``capabilities``."""
        if any(self.can(c) for c in capabilities):
            return
        raise Forbidden(
            action,
            role=self.role.value,
            allowed_roles=[r.value for r in roles_with(*capabilities)],
        )
