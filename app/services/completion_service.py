# =====================================================
# FILE: app/services/completion_service.py
# Field Completion Evaluator (pure, no database access)
# =====================================================

from dataclasses import dataclass
from typing import Any, List, Tuple


@dataclass(frozen=True)
class ParticipantProgress:
    participant_id: str
    completed: bool
    progress_percent: int
    required_total: int
    required_done: int
    assigned_total: int
    assigned_done: int

    def to_dict(self) -> dict:
        return {
            "participantId": self.participant_id,
            "completed": self.completed,
            "progressPercent": self.progress_percent,
            "requiredTotal": self.required_total,
            "requiredDone": self.required_done,
        }


class ParticipantStatus:
    COMPLETED = "Completed"
    PENDING = "Pending"
    NOT_APPLICABLE = "Not Applicable"


def is_value_present(value: Any) -> bool:
    """A submitted value counts when non-null, non-blank and not an unticked box"""
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip() != ""
    if isinstance(value, (list, dict)):
        return len(value) > 0
    return True


def is_assignment_complete(field, assignment) -> bool:
    if field.is_signature:
        return bool(assignment.signed)
    return is_value_present(field.value)


def assignments_for(package, participant_id: str) -> List[Tuple[Any, Any]]:
    """(field, assignment) pairs held by one participant"""
    pairs = []
    for field in package.fields:
        assignment = field.assignment_for(participant_id)
        if assignment is not None:
            pairs.append((field, assignment))
    return pairs


def outstanding_assignments(package, participant_id: str) -> List[Tuple[Any, Any]]:
    return [
        (field, assignment)
        for field, assignment in assignments_for(package, participant_id)
        if not is_assignment_complete(field, assignment)
    ]


def participant_ids_with_fields(package) -> List[str]:
    seen = []
    for field in package.fields:
        for assignment in field.assigned_users:
            if assignment.participant_id not in seen:
                seen.append(assignment.participant_id)
    return seen


def evaluate_participant(package, participant_id: str) -> ParticipantProgress:
    """
    Completion of one participant's work.

    `completed` only looks at required fields; progress covers every
    assigned field and is advisory.
    """
    pairs = assignments_for(package, participant_id)
    required = [(f, a) for f, a in pairs if f.required]
    required_done = sum(1 for f, a in required if is_assignment_complete(f, a))
    assigned_done = sum(1 for f, a in pairs if is_assignment_complete(f, a))

    progress = 100 if not pairs else int(round(assigned_done * 100 / len(pairs)))

    return ParticipantProgress(
        participant_id=participant_id,
        completed=required_done == len(required),
        progress_percent=progress,
        required_total=len(required),
        required_done=required_done,
        assigned_total=len(pairs),
        assigned_done=assigned_done,
    )


def is_package_complete(package) -> bool:
    """
    True when every participant holding at least one field is complete.
    Receivers hold no fields and never block completion.
    """
    participant_ids = participant_ids_with_fields(package)
    if not participant_ids:
        return False
    return all(evaluate_participant(package, pid).completed for pid in participant_ids)


def package_progress_percent(package) -> int:
    pairs = [(f, a) for f in package.fields for a in f.assigned_users]
    if not pairs:
        return 0
    done = sum(1 for f, a in pairs if is_assignment_complete(f, a))
    return int(round(done * 100 / len(pairs)))


def participant_status(package, participant_id: str) -> str:
    if not assignments_for(package, participant_id):
        return ParticipantStatus.NOT_APPLICABLE
    if evaluate_participant(package, participant_id).completed:
        return ParticipantStatus.COMPLETED
    return ParticipantStatus.PENDING
