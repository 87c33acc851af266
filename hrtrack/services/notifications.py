"""
Notification gateway for push and email.
Writes outbox rows; delivery is done by the external notification transport.
"""
import uuid
from dataclasses import dataclass
from typing import Optional, Dict, List, Protocol, Union

import structlog
from sqlalchemy.orm import sessionmaker

from ..config import Settings
from ..models.models import Notification
from .permissions import Role

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class RoleGroup:
    """Everyone holding ``role``."""
    role: Role


Recipient = Union[uuid.UUID, RoleGroup]


class Notifier(Protocol):
    def send(self, recipient: Recipient, template_key: str, payload: Optional[Dict] = None) -> int:
        """Queue a message; returns how many employee-channel notifications were queued."""
        ...


class OutboxNotifier:
    def __init__(self, session_factory: sessionmaker, directory, settings: Settings):
        self._session_factory = session_factory
        self._directory = directory
        self._settings = settings

    def _channels(self) -> List[str]:
        channels = []
        if self._settings.enable_push:
            channels.append("push")
        if self._settings.enable_email:
            channels.append("email")
        return channels

    def _expand(self, recipient: Recipient) -> List[uuid.UUID]:
        if isinstance(recipient, RoleGroup):
            return self._directory.ids_with_role(recipient.role)
        return [recipient]

    def send(self, recipient: Recipient, template_key: str, payload: Optional[Dict] = None) -> int:
        employee_ids = self._expand(recipient)
        channels = self._channels()
        if not employee_ids or not channels:
            return 0

        with self._session_factory() as db, db.begin():
            for employee_id in employee_ids:
                for channel in channels:
                    db.add(Notification(
                        employee_id=employee_id,
                        channel=channel,
                        template_key=template_key,
                        payload_json=payload,
                        status="pending",
                    ))
        queued = len(employee_ids) * len(channels)
        logger.info("notification_queued", template_key=template_key, recipients=len(employee_ids), queued=queued)
        return queued
