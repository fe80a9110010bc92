"""
Audit logging service for tracking security-relevant actions.

Recording is best-effort: a failure to persist an entry is logged and
swallowed, never propagated to the operation being described. In async mode
entries are written by a single background worker in the order they were
recorded, which keeps per-tenant timestamps monotonic.
"""
import json
import logging
import queue
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from flask import Flask, has_request_context, request

from martpos.models.audit_log import AuditLog, AuditAction, AuditStatus
from martpos.utils.identifiers import generate_public_id
from martpos.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

_STOP = object()


@dataclass(frozen=True)
class AuditEntry:
    """An audit fact before it is persisted."""
    action: AuditAction
    tenant_id: str
    user_id: str
    user_role: Optional[str] = None
    user_name: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    resource_name: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    previous_state: Optional[Dict[str, Any]] = None
    new_state: Optional[Dict[str, Any]] = None
    status: AuditStatus = AuditStatus.SUCCESS
    error_message: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    log_id: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_model(self) -> AuditLog:
        return AuditLog(
            log_id=self.log_id,
            tenant_id=self.tenant_id or 'global',
            user_id=self.user_id or 'unknown',
            user_name=self.user_name,
            user_role=self.user_role,
            action=self.action.value,
            resource_type=self.resource_type,
            resource_id=self.resource_id,
            resource_name=self.resource_name,
            details=_jsonable(self.details) or {},
            previous_state=_jsonable(self.previous_state),
            new_state=_jsonable(self.new_state),
            ip_address=self.ip_address,
            user_agent=self.user_agent,
            status=self.status.value,
            error_message=self.error_message,
            extra=_jsonable(self.metadata) or {},
            created_at=self.created_at,
        )

    def to_event(self) -> Dict[str, Any]:
        return {
            'logId': self.log_id,
            'tenantId': self.tenant_id,
            'userId': self.user_id,
            'userRole': self.user_role,
            'action': self.action.value,
            'resource': {'type': self.resource_type, 'id': self.resource_id, 'name': self.resource_name},
            'status': self.status.value,
            'errorMessage': self.error_message,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


def _jsonable(value):
    """Round-trip through JSON so datetimes, Decimals and enums become plain values."""
    if value is None:
        return None
    try:
        return json.loads(json.dumps(value, default=str))
    except (TypeError, ValueError) as e:
        logger.warning(f"Failed to serialize audit payload: {e}")
        return {'repr': str(value)}


class AuditRecorder:
    """Append-only, fire-and-forget audit writer."""

    def __init__(self, session_factory=None, async_mode=True, queue_size=10000, event_channel=None):
        self._session_factory = session_factory
        self.async_mode = async_mode
        self.event_channel = event_channel
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._worker: Optional[threading.Thread] = None
        self._clock_lock = threading.Lock()
        self._last_timestamp: Optional[datetime] = None

    def init_app(self, app: Flask) -> None:
        from martpos.database import session_scope
        self._session_factory = self._session_factory or session_scope
        self.async_mode = app.config.get('AUDIT_ASYNC', self.async_mode)
        self._queue = queue.Queue(maxsize=app.config.get('AUDIT_QUEUE_SIZE', 10000))
        self.event_channel = self.event_channel or app.extensions.get('event_channel')
        app.extensions['audit_recorder'] = self
        if self.async_mode:
            self.start()

    # -- lifecycle -------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._worker = threading.Thread(target=self._run, name='audit-writer', daemon=True)
        self._worker.start()
        logger.info("[AUDIT] background writer started")

    def stop(self, timeout: float = 5.0) -> None:
        """Drain pending entries and stop the worker."""
        if not self.running:
            return
        self._queue.put(_STOP)
        self._worker.join(timeout)
        self._worker = None
        logger.info("[AUDIT] background writer stopped")

    def flush(self, timeout: float = 5.0) -> bool:
        """Wait until every queued entry has been handled."""
        if not self.running:
            return True
        done = threading.Event()

        def _wait():
            self._queue.join()
            done.set()

        threading.Thread(target=_wait, daemon=True).start()
        return done.wait(timeout)

    # -- recording -------------------------------------------------------

    def _next_timestamp(self) -> datetime:
        with self._clock_lock:
            now = utcnow()
            if self._last_timestamp is not None and now <= self._last_timestamp:
                now = self._last_timestamp + timedelta(microseconds=1)
            self._last_timestamp = now
            return now

    def record(self, entry: Optional[AuditEntry] = None, **kwargs) -> Optional[str]:
        """
        Record an audit entry. Never raises.

        Accepts either a ready AuditEntry or its fields as keyword arguments.
        Request IP and user agent are filled in when called inside a request.

        Returns:
            The generated log_id, or None if the entry could not be built.
        """
        try:
            if entry is None:
                entry = AuditEntry(**kwargs)
            updates = {
                'log_id': entry.log_id or generate_public_id('log'),
                'created_at': self._next_timestamp(),
            }
            # Closed sets: unknown names raise ValueError here
            if not isinstance(entry.action, AuditAction):
                updates['action'] = AuditAction(entry.action)
            if not isinstance(entry.status, AuditStatus):
                updates['status'] = AuditStatus(entry.status)
            if has_request_context():
                if entry.ip_address is None:
                    updates['ip_address'] = request.remote_addr
                if entry.user_agent is None:
                    updates['user_agent'] = (request.headers.get('User-Agent') or '')[:255] or None
            entry = replace(entry, **updates)
        except Exception as e:
            logger.error(f"Failed to build audit entry: {e}", exc_info=True)
            return None

        if self.async_mode and self.running:
            try:
                self._queue.put_nowait(entry)
            except queue.Full:
                logger.error(f"[AUDIT] queue full, dropping {entry.action.value} entry {entry.log_id}")
        else:
            self._write(entry)
        return entry.log_id

    def _run(self) -> None:
        while True:
            entry = self._queue.get()
            try:
                if entry is _STOP:
                    return
                self._write(entry)
            finally:
                self._queue.task_done()

    def _write(self, entry: AuditEntry) -> None:
        try:
            with self._session_factory() as session:
                session.add(entry.to_model())
            logger.info(
                f"Audit log created: {entry.action.value} [{entry.status.value}] "
                f"by user {entry.user_id} in tenant {entry.tenant_id}"
            )
        except Exception as e:
            logger.error(f"Failed to create audit log {entry.log_id} ({entry.action.value}): {e}")
            return

        if self.event_channel is not None:
            try:
                self.event_channel.publish('audit', entry.to_event())
                if entry.action is AuditAction.SYSTEM_ERROR:
                    self.event_channel.publish('error', entry.to_event())
            except Exception as e:
                logger.warning(f"Failed to publish audit event: {e}")


def init_audit(app: Flask) -> AuditRecorder:
    """Create the app's audit recorder and start its writer."""
    recorder = AuditRecorder()
    recorder.init_app(app)
    return recorder


def get_audit_logs(
    session,
    tenant_id: Optional[str],
    limit: int = 100,
    offset: int = 0,
    action_filter: Optional[AuditAction] = None,
    user_id_filter: Optional[str] = None,
    resource_type_filter: Optional[str] = None,
    since: Optional[datetime] = None
):
    """
    Retrieve audit logs with optional filters, newest first.

    Args:
        session: Database session
        tenant_id: Tenant to restrict to (None = all tenants, super admin only)
        limit: Max number of results
        offset: Pagination offset
        action_filter: Filter by specific action
        user_id_filter: Filter by user
        resource_type_filter: Filter by resource type
        since: Only entries created at or after this naive UTC time

    Returns:
        List of AuditLog objects
    """
    query = session.query(AuditLog)

    if tenant_id:
        query = query.filter(AuditLog.tenant_id == tenant_id)

    if action_filter:
        query = query.filter(AuditLog.action == action_filter.value)

    if user_id_filter:
        query = query.filter(AuditLog.user_id == user_id_filter)

    if resource_type_filter:
        query = query.filter(AuditLog.resource_type == resource_type_filter)

    if since:
        query = query.filter(AuditLog.created_at >= since)

    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    query = query.limit(limit).offset(offset)

    return query.all()
