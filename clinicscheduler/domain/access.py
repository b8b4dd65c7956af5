"""
Visibility rules for confidential clinical records.
"""

from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    PATIENT = "patient"


def can_view_note(actor_role: str, actor_id: str, owner_id: str, is_confidential: bool) -> bool:
    """
    Decide whether an actor may read a note about ``owner_id``.

    Admins and doctors see every note. Patients see their own notes unless
    the note is marked confidential. Unknown roles see nothing.
    """
    try:
        role = UserRole(actor_role)
    except ValueError:
        return False

    if role in (UserRole.ADMIN, UserRole.DOCTOR):
        return True
    return actor_id == owner_id and not is_confidential
