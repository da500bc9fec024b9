"""Transaction state machine transitions enforced by reconciliation."""

PENDING = "PENDING"
COMPLETED = "COMPLETED"
FAILED = "FAILED"

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    PENDING: {COMPLETED, FAILED},
    COMPLETED: set(),
    FAILED: set(),
}

# Gateway result/response code meaning success, for every Daraja operation.
SUCCESS_CODE = "0"


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")


def is_terminal(status: str) -> bool:
    return not ALLOWED_TRANSITIONS.get(status)


def is_success_code(code) -> bool:
    """Callbacks carry an int code and queries a string one; compare as text."""

    return code is not None and str(code).strip() == SUCCESS_CODE


def status_for_result(code) -> str:
    return COMPLETED if is_success_code(code) else FAILED
