"""Earth Engine task status, polling and cancellation."""

from __future__ import annotations

import logging
import time

import ee

from gee_bridge import config

logger = logging.getLogger(__name__)

ACTIVE_STATES = ("READY", "RUNNING", "CANCEL_REQUESTED")
FAILED_STATES = ("FAILED", "CANCELLED")
# getTaskStatus answers UNKNOWN for ids it has no record of.
UNKNOWN_STATE = "UNKNOWN"


class TaskFailedError(RuntimeError):
    """An Earth Engine task finished as FAILED or CANCELLED."""

    def __init__(self, task_id: str, state: str, message: str | None = None):
        self.task_id = task_id
        self.state = state
        self.error_message = message
        super().__init__(f"Task {task_id} {state}: {message or 'no error message'}")


def _task_id(task) -> str:
    return task if isinstance(task, str) else task.id


def get_status(task_ids: list[str] | str) -> list[str]:
    """Get the state of one or more tasks, in the order given."""
    if isinstance(task_ids, str):
        task_ids = [task_ids]
    task_info = ee.data.getTaskStatus(task_ids)
    return [s["state"] for s in task_info]


def list_tasks(states: list[str] | None = None) -> list[dict]:
    """
    List the tasks of the current user, most recent first.

    Args:
        states: Only return tasks in these states (e.g. ["RUNNING"]).
    """
    tasks = ee.data.getTaskList()
    if states:
        wanted = {s.upper() for s in states}
        tasks = [t for t in tasks if t.get("state") in wanted]
    return tasks


def wait_for_task(
    task: ee.batch.Task | str,
    poll_interval: float | None = None,
    timeout: float | None = None,
) -> dict:
    """
    Poll a task until it finishes.

    Args:
        task: An ee.batch.Task or a task id.
        poll_interval: Seconds between status checks. Defaults to config.
        timeout: Give up after this many seconds.

    Returns:
        The final task status dict (state COMPLETED).

    Raises:
        TaskFailedError: The task ended FAILED or CANCELLED, or Earth Engine
            does not know the task id (state UNKNOWN).
        TimeoutError: ``timeout`` elapsed first.
    """
    task_id = _task_id(task)
    if poll_interval is None:
        poll_interval = config.POLL_INTERVAL
    started = time.monotonic()
    last_state = None

    while True:
        status = ee.data.getTaskStatus(task_id)[0]
        state = status["state"]
        if state != last_state:
            logger.info("Task %s: %s", task_id, state)
            last_state = state

        if state == "COMPLETED":
            return status
        if state in FAILED_STATES:
            raise TaskFailedError(task_id, state, status.get("error_message"))
        if state == UNKNOWN_STATE:
            raise TaskFailedError(task_id, state, "no such task (wrong or expired task id)")

        if timeout is not None and time.monotonic() - started >= timeout:
            raise TimeoutError(f"Task {task_id} still {state} after {timeout} seconds")
        time.sleep(poll_interval)


def wait_for_completion(export_tasks=None, id_list=None, wait=None) -> dict:
    """
    Wait until none of the given tasks is active.

    Failed tasks (and unknown task ids) are counted and logged, not raised.

    Raises:
        ValueError: If neither ``export_tasks`` nor ``id_list`` is given.

    Returns:
        dict: ``{"total": ..., "completed": ..., "failed": ...}``
    """
    if export_tasks is None and id_list is None:
        raise ValueError("Pass export_tasks or id_list to wait_for_completion")
    if id_list is None:
        id_list = [_task_id(e) if not isinstance(e, dict) else e["id"] for e in export_tasks]
    if wait is None:
        wait = config.POLL_INTERVAL

    while True:
        status = get_status(id_list)
        failed = [s for s in status if s in FAILED_STATES or s == UNKNOWN_STATE]
        completed = [s for s in status if s == "COMPLETED"]
        active = [s for s in status if s in ACTIVE_STATES]

        logger.info(
            "Tasks: %d total, %d active, %d completed, %d failed.",
            len(status), len(active), len(completed), len(failed),
        )

        if not active:
            if failed:
                logger.warning("All active tasks have finished, but %d tasks failed.", len(failed))
            else:
                logger.info("All tasks completed successfully.")
            return {"total": len(status), "completed": len(completed), "failed": len(failed)}

        time.sleep(wait)


def cancel_task(task_id: str) -> None:
    """Cancel a single task."""
    ee.data.cancelTask(task_id)
    logger.info("Cancelled task %s", task_id)


def cancel_all_tasks() -> int:
    """Cancel every READY or RUNNING task. Returns the number cancelled."""
    active = list_tasks(states=["READY", "RUNNING"])
    for task in active:
        cancel_task(task["id"])
    return len(active)
