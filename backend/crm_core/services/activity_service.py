# backend/crm_core/services/activity_service.py
"""
Activity Service - polymorphic activity linkage

An activity points at a Lead, Account or Opportunity through
(related_to_type, related_to_id). No foreign key can express that, so every
write checks that the target row exists first.
"""

from typing import Optional, List, Union
from datetime import datetime
from uuid import UUID
import logging
import uuid

from crm_core.enums import ActivityStatus, RelatedToType
from crm_core.exceptions import DanglingReferenceError, NotFoundError
from crm_core.models import Activity, RELATED_MODELS, User
from crm_core.schemas import ActivityCreate, ActivityUpdate
from crm_core.services.base import BaseService, transactional

logger = logging.getLogger(__name__)


class ActivityService(BaseService):
    """Logs activities against leads, accounts and opportunities."""

    @staticmethod
    def _to_uuid(value):
        """Safely convert to UUID"""
        if value is None:
            return None
        if isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))

    def resolve_target(self, related_to_type: Union[RelatedToType, str], related_to_id):
        """Return the referenced row or raise DanglingReferenceError."""
        try:
            kind = RelatedToType(related_to_type)
        except ValueError:
            raise DanglingReferenceError(str(related_to_type), related_to_id)
        target = self.db.get(RELATED_MODELS[kind], self._to_uuid(related_to_id))
        if target is None:
            raise DanglingReferenceError(kind.value, related_to_id)
        return target

    @transactional("log_activity")
    def log_activity(self, data: ActivityCreate) -> Activity:
        self.resolve_target(data.related_to_type, data.related_to_id)
        if data.owner_id is not None and self.db.get(User, data.owner_id) is None:
            raise NotFoundError("User", data.owner_id)

        activity = Activity(
            owner_id=data.owner_id,
            activity_type=data.activity_type.value,
            subject=data.subject,
            description=data.description,
            due_date=data.due_date,
            status=data.status.value,
            related_to_type=data.related_to_type.value,
            related_to_id=data.related_to_id,
        )
        self.db.add(activity)
        self.db.flush()
        logger.info(
            f"Logged {activity.activity_type} '{activity.subject}' on "
            f"{activity.related_to_type} {activity.related_to_id}"
        )
        return activity

    @transactional("relink_activity")
    def relink_activity(
        self,
        activity_id: UUID,
        related_to_type: RelatedToType,
        related_to_id: UUID,
    ) -> Activity:
        """Point an existing activity at another entity."""
        activity = self.get_activity(activity_id)
        kind = RelatedToType(related_to_type)
        self.resolve_target(kind, related_to_id)
        activity.related_to_type = kind.value
        activity.related_to_id = self._to_uuid(related_to_id)
        return activity

    @transactional("update_activity")
    def update_activity(self, activity_id: UUID, data: ActivityUpdate) -> Activity:
        activity = self.get_activity(activity_id)
        # Target may have been deleted since the activity was logged
        self.resolve_target(activity.related_to_type, activity.related_to_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            if isinstance(value, ActivityStatus):
                value = value.value
            setattr(activity, field, value)
        return activity

    def complete_activity(self, activity_id: UUID) -> Activity:
        return self.update_activity(activity_id, ActivityUpdate(status=ActivityStatus.COMPLETED))

    def get_activity(self, activity_id: UUID) -> Activity:
        activity = self.db.get(Activity, self._to_uuid(activity_id))
        if activity is None:
            raise NotFoundError("Activity", activity_id)
        return activity

    def get_activities_for(
        self,
        related_to_type: Union[RelatedToType, str],
        related_to_id,
        status: Optional[ActivityStatus] = None,
        due_before: Optional[datetime] = None,
    ) -> List[Activity]:
        """Activities attached to one entity, by due_date (undated last)."""
        kind = RelatedToType(related_to_type)
        query = self.db.query(Activity).filter(
            Activity.related_to_type == kind.value,
            Activity.related_to_id == self._to_uuid(related_to_id),
        )
        if status is not None:
            query = query.filter(Activity.status == ActivityStatus(status).value)
        if due_before is not None:
            query = query.filter(Activity.due_date < due_before)
        return query.order_by(
            Activity.due_date.is_(None),
            Activity.due_date,
            Activity.created_at,
        ).all()

    def find_dangling(self) -> List[Activity]:
        """Activities whose target row no longer exists."""
        dangling = []
        for activity in self.db.query(Activity).all():
            try:
                self.resolve_target(activity.related_to_type, activity.related_to_id)
            except DanglingReferenceError:
                dangling.append(activity)
        return dangling
