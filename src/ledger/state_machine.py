from src.exceptions import InvalidStatusTransition, TicketNotActive
from src.pricing.schemas import ApplicantStatus, TicketStatus

S = ApplicantStatus

# Status changes an operator may set directly
DIRECT_TRANSITIONS = {
    S.NEW_REGISTRATION: {S.SERVICES_CONFIGURED},
    S.SERVICES_CONFIGURED: set(),
    S.EXAM_SCHEDULED: {S.ATTENDED_EXAM, S.ABSENT},
    S.ATTENDED_EXAM: {S.PASSED, S.FAILED},
    S.PASSED: set(),
    S.FAILED: set(),
    S.ABSENT: set(),
}

# Undo of an exam result, admin only
ADMIN_OVERRIDES = {
    S.PASSED: {S.ATTENDED_EXAM},
    S.FAILED: {S.ATTENDED_EXAM},
}

# Statuses from which an exam (re)scheduling operation may run
SCHEDULABLE_FROM = {
    S.NEW_REGISTRATION, S.SERVICES_CONFIGURED, S.EXAM_SCHEDULED, S.FAILED, S.ABSENT
}

TICKET_TRANSITIONS = {
    TicketStatus.ISSUED: {TicketStatus.USED, TicketStatus.NO_SHOW, TicketStatus.CANCELLED},
    TicketStatus.USED: set(),
    TicketStatus.NO_SHOW: set(),
    TicketStatus.CANCELLED: set(),
}

def assert_applicant_transition(current, new, is_admin: bool = False, via_scheduling: bool = False):
    current = ApplicantStatus(current)
    new = ApplicantStatus(new)

    if via_scheduling:
        if new == S.EXAM_SCHEDULED and current in SCHEDULABLE_FROM:
            return
    elif new in DIRECT_TRANSITIONS[current]:
        return
    elif is_admin and new in ADMIN_OVERRIDES.get(current, set()):
        return

    if new == S.EXAM_SCHEDULED and not via_scheduling:
        raise InvalidStatusTransition("Use exam scheduling or retake to move an applicant to EXAM_SCHEDULED")
    raise InvalidStatusTransition(f"Cannot change status from {current.value} to {new.value}")

def assert_ticket_transition(current, new):
    current = TicketStatus(current)
    new = TicketStatus(new)
    if new not in TICKET_TRANSITIONS[current]:
        raise TicketNotActive(f"Ticket cannot move from {current.value} to {new.value}")
