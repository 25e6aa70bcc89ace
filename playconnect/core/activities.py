from dataclasses import dataclass

from sqlalchemy.orm import Session

from playconnect.core.errors import ActivityNotFound
from playconnect.models.activity import Activity


@dataclass(frozen=True)
class ActivityRef:
    id: int
    uuid: str
    name: str
    host_parent_id: int
    host_child_id: int
    auto_notify_new_connections: bool


class ActivityDirectory:
    """
    Boundary to the activity CRUD service.

    The engine only asks whether an activity exists and who hosts it.
    """

    def __init__(self, db: Session):
        self.db = db

    def activity_exists(self, activity_uuid: str) -> bool:
        return (
            self.db.query(Activity.id)
            .filter(Activity.uuid == activity_uuid)
            .first()
            is not None
        )

    def get_activity(self, activity_uuid: str) -> ActivityRef:
        activity = self.db.query(Activity).filter(Activity.uuid == activity_uuid).first()
        if not activity:
            raise ActivityNotFound(f"Activity {activity_uuid} not found")
        return to_ref(activity)


def to_ref(activity: Activity) -> ActivityRef:
    return ActivityRef(
        id=activity.id,
        uuid=activity.uuid,
        name=activity.name,
        host_parent_id=activity.host_parent_id,
        host_child_id=activity.host_child_id,
        auto_notify_new_connections=activity.auto_notify_new_connections,
    )
