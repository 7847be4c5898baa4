"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from qcsat.db.enums import JobType
from qcsat.jobs.handlers import inbound_events, outbound_actions

JobHandler = Callable[[object, object], Awaitable[None]]

# email:send, csat:aggregate and integration:sync run in other services.
JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.PROCESS_INBOUND_EVENT.value: inbound_events.process_inbound_event,
    JobType.EXECUTE_OUTBOUND_ACTION.value: outbound_actions.process_outbound_action,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
