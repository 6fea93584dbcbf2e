"""User directory, bin visibility and record-level mutations."""

from __future__ import annotations

import logging
from typing import Iterable, List

from app.schemas import BinAssignment, Notification, User
from datastore.mock_firestore import MockCollection
from models.records import Role, SessionContext
from services.errors import UnknownAssignmentError, UnknownUserError, UserDeletedError

logger = logging.getLogger(__name__)


class BinDirectory:
    def __init__(
        self,
        users: MockCollection[User],
        assignments: MockCollection[BinAssignment],
        notifications: MockCollection[Notification],
    ) -> None:
        self.users = users
        self.assignments = assignments
        self.notifications = notifications

    def resolve_session(self, user_id: str) -> SessionContext:
        user = self.users.get_item(user_id)
        if user is None:
            raise UnknownUserError(user_id)
        if user.is_deleted:
            raise UserDeletedError(user_id)
        return SessionContext(user_id=user.id, role=user.role, display_name=user.display_name)

    def assigned_bins(self, user_id: str) -> set[str]:
        return {
            assignment.bin
            for assignment in self.assignments.query([("assignee", "array_contains", user_id)])
        }

    def visible_bins(self, session: SessionContext, bins: Iterable[str]) -> List[str]:
        """Admins see every bin; collectors see the bins assigned to them."""
        if session.is_admin:
            return sorted(bins)
        assigned = self.assigned_bins(session.user_id)
        return sorted(bin_id for bin_id in bins if bin_id in assigned)

    def assign_user(self, assignment_id: str, user_id: str) -> BinAssignment:
        assignment = self._assignment(assignment_id)
        if user_id in assignment.assignee:
            return assignment
        updated = self.assignments.update_item(
            assignment_id, assignee=[*assignment.assignee, user_id]
        )
        logger.info("Collector assigned to bin.", extra={"bin_id": updated.bin, "collector_id": user_id})
        return updated

    def unassign_user(self, assignment_id: str, user_id: str) -> BinAssignment:
        assignment = self._assignment(assignment_id)
        if user_id not in assignment.assignee:
            return assignment
        updated = self.assignments.update_item(
            assignment_id,
            assignee=[member for member in assignment.assignee if member != user_id],
        )
        logger.info("Collector unassigned from bin.", extra={"bin_id": updated.bin, "collector_id": user_id})
        return updated

    def active_collectors(self) -> List[User]:
        collectors = self.users.query([("role", "==", Role.user), ("is_deleted", "==", False)])
        return sorted(collectors, key=lambda user: user.display_name)

    def soft_delete_user(self, user_id: str) -> User:
        if self.users.get_item(user_id) is None:
            raise UnknownUserError(user_id)
        return self.users.update_item(user_id, is_deleted=True)

    def notifications_for_bin(self, bin_id: str) -> List[Notification]:
        found = self.notifications.query([("bin", "==", bin_id)])
        return sorted(found, key=lambda notification: notification.occurred_at, reverse=True)

    def mark_notification_read(self, notification_id: str) -> Notification:
        try:
            return self.notifications.update_item(notification_id, is_read=True)
        except KeyError as exc:
            raise KeyError(f"Notification {notification_id!r} not found.") from exc

    def _assignment(self, assignment_id: str) -> BinAssignment:
        assignment = self.assignments.get_item(assignment_id)
        if assignment is None:
            raise UnknownAssignmentError(assignment_id)
        return assignment
