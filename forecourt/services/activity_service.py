"""Fire-and-forget activity sink for deal lifecycle events."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

from forecourt.core.logging import LogContext, build_log_event
from forecourt.models.activity_log import ActivityLog
from forecourt.services.base_service import BaseService

logger = logging.getLogger(__name__)


class ActivityService(BaseService):
    """Persists activity rows after the business transaction has committed.

    A failure here is logged and swallowed: the deal change already happened.
    """

    def emit(self, event: str, context: LogContext, **fields: Any) -> ActivityLog | None:
        payload = build_log_event(event, context, **fields)
        entry = ActivityLog(
            tenant_id=context.tenant_id,
            deal_id=context.deal_id,
            vehicle_id=context.vehicle_id,
            user_id=context.user_id,
            event=event,
            payload=payload,
        )
        try:
            self.db.add(entry)
            self.commit()
        except SQLAlchemyError:
            logger.warning(
                "activity.emit.failed",
                exc_info=True,
                extra={"event": "activity.emit.failed", "tenant_id": context.tenant_id, "deal_id": context.deal_id},
            )
            return None
        logger.info(event, extra={"event": event, "tenant_id": context.tenant_id, "deal_id": context.deal_id})
        return entry

    def list_for_deal(self, tenant_id: int, deal_id: int) -> list[ActivityLog]:
        return (
            self.db.query(ActivityLog)
            .filter(ActivityLog.tenant_id == tenant_id, ActivityLog.deal_id == deal_id)
            .order_by(ActivityLog.id)
            .all()
        )
