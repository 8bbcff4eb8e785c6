from plantledger.domain.entities import Actor
from plantledger.rules.models import RbacRules

# Capabilities checked by the ledger
ACTION_UNDO = "inventory:undo"
ACTION_UNDO_ANY = "inventory:undo_any"
ACTION_PRODUCTION_CREATE = "production:create"
ACTION_PRODUCTS_MANAGE = "products:manage"


def transaction_action(tx_type: str) -> str:
    return f"inventory:{tx_type}"


class PolicyEngine:
    """Role based capability checks driven by the rbac section of the rules file."""

    def __init__(self, rbac: RbacRules):
        self.rbac = rbac

    def can(self, role: str | None, action: str) -> bool:
        """
        Check if the role may perform the action.

        Order of precedence:
        1. Public permissions
        2. Exact action, "*" or a scoped wildcard such as "inventory:*"
        """
        if action in self.rbac.public_permissions:
            return True

        if not role:
            return False

        allowed_actions = self.rbac.roles.get(role, [])
        if "*" in allowed_actions or action in allowed_actions:
            return True

        if ":" in action:
            scope = action.split(":")[0]
            if f"{scope}:*" in allowed_actions:
                return True

        return False

    def allows(self, actor: Actor | None, action: str) -> bool:
        return self.can(actor.role if actor else None, action)
