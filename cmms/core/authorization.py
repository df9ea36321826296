from enum import Enum

from fastapi import Depends, HTTPException

from cmms.deps.auth import AuthContext, require_auth


class Role(Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    SUPERVISOR = "SUPERVISOR"
    STOREKEEPER = "STOREKEEPER"
    TECHNICIAN = "TECHNICIAN"
    OPERATOR = "OPERATOR"


ROLE_RANK = {
    Role.OPERATOR: 1,
    Role.TECHNICIAN: 1,
    Role.STOREKEEPER: 2,
    Role.SUPERVISOR: 3,
    Role.MANAGER: 4,
    Role.ADMIN: 5,
}

# Notified when a job is completed; the only roles that can mint meter overrides.
SUPERVISORY_ROLES = (Role.SUPERVISOR, Role.MANAGER, Role.ADMIN)


def parse_role(value) -> Role:
    return Role(str(value).upper())


def require_role(role: Role):
    def dependency(auth: AuthContext = Depends(require_auth)) -> Role:
        try:
            user_role = parse_role(auth.role)
        except ValueError as exc:
            raise HTTPException(status_code=403, detail="Invalid role claim") from exc

        if ROLE_RANK[user_role] < ROLE_RANK[role]:
            raise HTTPException(status_code=403, detail="Insufficient role")

        return user_role

    return dependency
