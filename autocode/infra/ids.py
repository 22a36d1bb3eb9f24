import uuid


def new_run_id() -> str:
    """
    Reason:
    - One id ties together every log line, memoized step and persisted row of a run.
    Benefit:
    - Replaying a run id picks up the steps it already completed.
    """
    return uuid.uuid4().hex


def new_record_id() -> str:
    """Primary key for message/fragment rows."""
    return uuid.uuid4().hex
