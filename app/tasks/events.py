import logging

from sqlalchemy.orm import Session

from app.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="app.tasks.events.process_event", ignore_result=True)
def process_event(
    event_type: str,
    entity_type: str,
    entity_id: str,
    actor_id: str | None = None,
    document_id: str | None = None,
    payload: dict | None = None,
) -> None:
    """Append a published event to the audit trail."""
    from app.db import SessionLocal

    logger.info("Processing event %s for %s/%s", event_type, entity_type, entity_id)
    db = SessionLocal()
    try:
        _record(db, event_type, entity_type, entity_id, actor_id, document_id, payload)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.exception("Failed to record event %s: %s", event_type, e)
    finally:
        db.close()


def _record(
    db: Session,
    event_type: str,
    entity_type: str,
    entity_id: str,
    actor_id: str | None,
    document_id: str | None,
    payload: dict | None,
):
    from app.models.audit import AuditEvent
    from app.services.common import coerce_uuid

    event = AuditEvent(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=coerce_uuid(actor_id),
        document_id=coerce_uuid(document_id),
        payload=payload or {},
    )
    db.add(event)
    db.flush()
    return event
