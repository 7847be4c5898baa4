"""Job-related enums."""

from enum import Enum


class JobType(str, Enum):
    """Types of background jobs."""

    SEND_EMAIL = "email:send"  # Delivered by the email service, no handler here
    PROCESS_INBOUND_EVENT = "integration:inbound"
    EXECUTE_OUTBOUND_ACTION = "integration:outbound"
    COMPUTE_AGGREGATES = "csat:aggregate"
    SYNC_INTEGRATION = "integration:sync"


class DeadLetterReason(str, Enum):
    """Why a job ended up in the dead-letter set."""

    MAX_ATTEMPTS = "max_attempts"
    UNKNOWN_JOB_TYPE = "unknown_job_type"
