"""
Audit Metadata

Declarative description of how an operation should be audited, and the
registry that attaches those descriptions to operation names.

Example:
    audit_registry.register(
        "update_offer",
        AuditMetadata(
            action=AuditActions.UPDATE_OFFER,
            table_name="offers",
            record_id_param="offer_id",
            get_old_values=lambda inputs: inputs.body.get("previous"),
        ),
    )
"""
import enum
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from audittrail.audit.context import AuditActor


class OperationKind(str, enum.Enum):
    """How an operation is classified for logging; never persisted."""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    GENERIC = "generic"

    @classmethod
    def from_method(cls, method: str) -> "OperationKind":
        method = (method or "").upper()
        if method == "POST":
            return cls.CREATE
        if method in ("PUT", "PATCH"):
            return cls.UPDATE
        if method == "DELETE":
            return cls.DELETE
        return cls.GENERIC


class AuditActions:
    """
    Known action tags, kept for documentation and autocompletion.

    The set is not closed: any non-empty string is a valid action.
    """
    CREATE_CORPORATE_ACCOUNT = "CREATE_CORPORATE_ACCOUNT"
    CREATE_BRANCH_ACCOUNT = "CREATE_BRANCH_ACCOUNT"
    CHANGE_PASSWORD = "CHANGE_PASSWORD"
    UPDATE_PROFILE_PICTURE = "UPDATE_PROFILE_PICTURE"
    CREATE_OFFER = "CREATE_OFFER"
    UPDATE_OFFER = "UPDATE_OFFER"
    DELETE_OFFER = "DELETE_OFFER"
    TOGGLE_OFFER_STATUS = "TOGGLE_OFFER_STATUS"
    APPROVE_REJECT_STUDENT = "APPROVE_REJECT_STUDENT"
    APPROVE_REJECT_BRANCH = "APPROVE_REJECT_BRANCH"
    APPROVE_REJECT_OFFER = "APPROVE_REJECT_OFFER"


# Review workflows whose logged new_values carry the decision and reviewer
PRIVILEGED_REVIEW_ACTIONS: frozenset[str] = frozenset({
    AuditActions.APPROVE_REJECT_STUDENT,
    AuditActions.APPROVE_REJECT_BRANCH,
    AuditActions.APPROVE_REJECT_OFFER,
})

MAX_ACTION_LENGTH = 100


def validate_action(action: Any) -> str:
    """
    Validate an action tag.

    Raises:
        ValueError: If the action is not a non-empty string of at most 100 chars
    """
    if not isinstance(action, str) or not action.strip():
        raise ValueError("Audit action must be a non-empty string")
    action = action.strip()
    if len(action) > MAX_ACTION_LENGTH:
        raise ValueError(f"Audit action must be at most {MAX_ACTION_LENGTH} characters")
    return action


@dataclass(frozen=True)
class OperationInputs:
    """
    Everything a derivation function may look at.

    `request` is the raw framework request (or None outside HTTP), kept so a
    derivation can reach anything the other fields do not expose.
    """
    body: Any = None
    path_params: dict = field(default_factory=dict)
    query_params: dict = field(default_factory=dict)
    actor: Optional[AuditActor] = None
    request: Any = None


Derivation = Callable[[OperationInputs], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class AuditMetadata:
    """
    How to audit one operation.

    Attributes:
        action: Action tag written to the entry (required, non-empty)
        table_name: Logical entity affected
        record_id_param: Path parameter holding the record id
        get_record_id: Custom record id derivation
        get_old_values: Derives the pre-operation snapshot from the inputs
        get_new_values: Derives the post-operation snapshot from the inputs
        skip_logging: Register the operation but never log it
    """
    action: str
    table_name: Optional[str] = None
    record_id_param: Optional[str] = None
    get_record_id: Optional[Derivation] = None
    get_old_values: Optional[Derivation] = None
    get_new_values: Optional[Derivation] = None
    skip_logging: bool = False

    def __post_init__(self):
        object.__setattr__(self, "action", validate_action(self.action))


class AuditRegistry:
    """Maps operation names to their AuditMetadata."""

    def __init__(self):
        self._entries: dict[str, AuditMetadata] = {}

    def register(self, operation: str, metadata: AuditMetadata) -> AuditMetadata:
        if not operation:
            raise ValueError("Operation name is required")
        if operation in self._entries:
            raise ValueError(f"Operation '{operation}' already has audit metadata")
        self._entries[operation] = metadata
        return metadata

    def get(self, operation: Optional[str]) -> Optional[AuditMetadata]:
        if not operation:
            return None
        return self._entries.get(operation)

    def __contains__(self, operation: str) -> bool:
        return operation in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# Process-wide registry used by routers that don't build their own
audit_registry = AuditRegistry()
