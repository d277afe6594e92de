"""Error taxonomy for daygrid.

Core objects (registry, store, adapter) raise these. The view facades in
`daygrid.views` catch every `DaygridError` and surface it as a notification,
so none of them reach the rendering layer.
"""


class DaygridError(Exception):
    """Base class for all recoverable scheduling errors."""

    # Short human-readable message shown to the user
    user_message = "Something went wrong"

    def __init__(self, message: str = None):
        super().__init__(message or self.user_message)


class SlotOccupied(DaygridError):
    """A non-deleted task already exists at (day, slot)."""
    user_message = "That time slot already has a task"

    def __init__(self, day, slot: str):
        self.day = day
        self.slot = slot
        super().__init__(f"Slot {slot!r} on {day} already has a task")


class SlotInUse(DaygridError):
    """A slot label cannot be removed while tasks reference it."""
    user_message = "Time slot is in use and cannot be removed"

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"Slot {label!r} is referenced by at least one task")


class LastSlotError(DaygridError):
    """The registry must always keep at least one slot."""
    user_message = "At least one time slot is required"


class SlotAlreadyExists(DaygridError):
    """Rename target is already a different registered slot."""
    user_message = "A time slot with that name already exists"

    def __init__(self, label: str):
        self.label = label
        super().__init__(f"Slot {label!r} already exists")


class ReconciliationFailed(DaygridError):
    """The persistence service rejected or could not be reached for an operation."""
    user_message = "Could not save your change"


class NotFound(ReconciliationFailed):
    """Target record is unknown server side (treated as already gone)."""
    user_message = "Task no longer exists"


class InvalidTransition(DaygridError):
    """A task lifecycle transition that the state machine does not allow."""

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move task from {current} to {target}")
