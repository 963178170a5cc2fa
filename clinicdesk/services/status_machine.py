# clinicdesk/services/status_machine.py
from ..models import AppointmentStatus

S = AppointmentStatus

# completed is terminal; blocked lives outside the normal status controls.
ALLOWED_TRANSITIONS = {
    S.scheduled: frozenset({S.completed, S.canceled}),
    S.canceled: frozenset({S.scheduled}),
    S.completed: frozenset(),
    S.blocked: frozenset(),
}


class InvalidTransition(ValueError):
    def __init__(self, current: AppointmentStatus, target: AppointmentStatus):
        self.current = current
        self.target = target
        super().__init__(f"Cannot change status from '{current.value}' to '{target.value}'")


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS[current]


def transition(current: AppointmentStatus, target: AppointmentStatus) -> AppointmentStatus:
    if not can_transition(current, target):
        raise InvalidTransition(current, target)
    return target


def is_editable(status: AppointmentStatus) -> bool:
    return status != S.completed


def can_delete(status: AppointmentStatus) -> bool:
    return status != S.completed
