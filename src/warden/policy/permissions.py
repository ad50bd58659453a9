"""
Permission Policy Engine for Warden.

Four ordered levels, each with a fixed operation set and a default
confirmation requirement:

    restricted  file_read                                      confirm
    standard    file_read, file_write, env_access
    elevated    file_read, file_write, process_spawn, env_access confirm
    trusted     all operations

A PermissionSet may narrow an operation with a Restriction. Restrictions
never widen the level: an operation outside the level's set is denied
whether or not a restriction mentions it.

Evaluation order for check_permission:
    1. Operation not granted by the level -> deny
    2. Matching restriction with both allow and deny lists -> deny
       (configuration problem, reported with its own reason)
    3. Matching restriction -> allow, confirmation if either side asks
    4. Otherwise -> allow with the level's confirmation flag
"""

import logging

from warden.schema import (
    LEVEL_POLICIES,
    PERMISSION_HIERARCHY,
    Operation,
    PermissionCheckResult,
    PermissionLevel,
    PermissionSet,
    Restriction,
)

logger = logging.getLogger(__name__)


class PermissionManager:
    """
    Evaluates and derives template permission sets.

    The manager holds no per-template state. Every method that "changes" a
    permission set returns a new one.

    Usage:
        manager = PermissionManager()
        perms = manager.create_default_permissions("standard")
        result = manager.check_permission(perms, Operation.FILE_WRITE)
        if result.allowed and result.restriction:
            ok = manager.validate_path(target, result.restriction)
    """

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger
        self._log.debug(
            "PermissionManager initialized",
            extra={"levels": [level.value for level in PERMISSION_HIERARCHY]},
        )

    def check_permission(
        self,
        permission_set: PermissionSet,
        operation: Operation | str,
    ) -> PermissionCheckResult:
        """
        Check whether a permission set grants an operation.

        Unknown operation names are denied like any operation outside the
        level's set; this never raises.
        """
        level = permission_set.level
        policy = LEVEL_POLICIES[level]
        op = self._coerce_operation(operation)
        op_name = op.value if op is not None else str(operation)

        if op is None or op not in policy.operations:
            self._log.warning(
                "Permission denied",
                extra={"level": level.value, "operation": op_name},
            )
            return PermissionCheckResult.deny(
                f"operation '{op_name}' not allowed at level '{level.value}'"
            )

        restriction = next(
            (r for r in permission_set.restrictions if r.operation == op),
            None,
        )

        if restriction is not None:
            if restriction.has_conflicting_paths:
                self._log.warning(
                    "Invalid restriction configuration",
                    extra={"level": level.value, "operation": op_name},
                )
                return PermissionCheckResult.deny(
                    "Restriction cannot have both allowed and denied paths"
                )
            return PermissionCheckResult.allow(
                requires_confirmation=restriction.requires_confirmation
                or policy.requires_confirmation,
                restriction=restriction,
            )

        self._log.debug(
            "Permission granted",
            extra={"level": level.value, "operation": op_name},
        )
        return PermissionCheckResult.allow(
            requires_confirmation=policy.requires_confirmation,
        )

    def validate_path(self, path: str, restriction: Restriction) -> bool:
        """
        Check a concrete path against a restriction.

        Denied prefixes win. A non-empty allow list then acts as an
        allowlist; an empty one allows everything not denied.
        """
        for denied in restriction.denied_paths:
            if path.startswith(denied):
                return False

        if restriction.allowed_paths:
            return any(path.startswith(allowed) for allowed in restriction.allowed_paths)

        return True

    def create_default_permissions(
        self,
        level: PermissionLevel | str = PermissionLevel.STANDARD,
    ) -> PermissionSet:
        """Create an unrestricted permission set for a level."""
        return PermissionSet(level=PermissionLevel(level))

    def create_restricted_permissions(
        self,
        restrictions: list[Restriction] | tuple[Restriction, ...] | None = None,
    ) -> PermissionSet:
        """Create a restricted-level permission set."""
        return PermissionSet(
            level=PermissionLevel.RESTRICTED,
            restrictions=tuple(restrictions or ()),
        )

    def upgrade_permission(
        self,
        current: PermissionSet,
        target: PermissionLevel | str,
    ) -> PermissionSet:
        """
        Move a permission set to another level.

        The new set takes the target level's operations and keeps the
        current restrictions unchanged.
        """
        target_level = PermissionLevel(target)
        self._log.info(
            "Permission upgrade requested",
            extra={"from_level": current.level.value, "to_level": target_level.value},
        )
        return PermissionSet(level=target_level, restrictions=current.restrictions)

    def requires_escalation(
        self,
        current: PermissionSet | PermissionLevel | str,
        required: PermissionLevel | str,
    ) -> bool:
        """True iff required sits strictly above current in the hierarchy."""
        current_level = current.level if isinstance(current, PermissionSet) else PermissionLevel(current)
        required_level = PermissionLevel(required)
        return PERMISSION_HIERARCHY.index(required_level) > PERMISSION_HIERARCHY.index(current_level)

    def get_permission_hierarchy(self) -> list[PermissionLevel]:
        """Levels from least to most capable."""
        return list(PERMISSION_HIERARCHY)

    def get_allowed_operations(self, level: PermissionLevel | str) -> frozenset[Operation]:
        return LEVEL_POLICIES[PermissionLevel(level)].operations

    def requires_confirmation(self, level: PermissionLevel | str) -> bool:
        return LEVEL_POLICIES[PermissionLevel(level)].requires_confirmation

    def add_restriction(
        self,
        permission_set: PermissionSet,
        restriction: Restriction,
    ) -> PermissionSet:
        """Return a copy with the restriction appended."""
        return PermissionSet(
            level=permission_set.level,
            restrictions=(*permission_set.restrictions, restriction),
        )

    def remove_restriction(
        self,
        permission_set: PermissionSet,
        operation: Operation | str,
    ) -> PermissionSet:
        """Return a copy without any restriction for the operation."""
        op = self._coerce_operation(operation)
        return PermissionSet(
            level=permission_set.level,
            restrictions=tuple(r for r in permission_set.restrictions if r.operation != op),
        )

    @staticmethod
    def _coerce_operation(operation: Operation | str) -> Operation | None:
        try:
            return Operation(operation)
        except ValueError:
            return None
