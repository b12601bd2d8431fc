"""
Execution Poller

Runs a deployed workflow once and polls the n8n execution until it
finishes or the wait budget runs out.

Returns:
    dict with success, execution_id, error, email_sent

`email_sent` is True when a node whose name mentions "email" produced an
output item carrying an `id` (the email provider's message id).
"""

import json
import time

from healer.logger import log
from healer.n8n_client import N8nError

DEFAULT_TIMEOUT = 30.0
DEFAULT_INTERVAL = 1.0
ERROR_PREVIEW_CHARS = 200


def _email_sent(execution: dict) -> bool:
    run_data = ((execution.get("data") or {}).get("resultData") or {}).get("runData") or {}
    for node_name, runs in run_data.items():
        if "email" not in node_name.lower() or not runs:
            continue
        try:
            item = runs[0]["data"]["main"][0][0]
        except (KeyError, IndexError, TypeError):
            continue
        if isinstance(item, dict) and (item.get("json") or {}).get("id"):
            return True
    return False


def wait_for_execution(client, execution_id, timeout=DEFAULT_TIMEOUT,
                       interval=DEFAULT_INTERVAL, sleep=time.sleep, clock=time.monotonic) -> dict:
    """Poll GET /executions/{id} until finished, failed or timed out."""
    started = clock()
    while clock() - started < timeout:
        try:
            execution = client.get_execution(execution_id)
        except N8nError as e:
            log("execution.poll_error", level="error", execution_id=execution_id, error=str(e))
            return {"success": False, "execution_id": execution_id, "error": str(e), "email_sent": False}

        if execution.get("finished") or execution.get("stoppedAt"):
            error = ((execution.get("data") or {}).get("resultData") or {}).get("error")
            if error:
                return {
                    "success": False,
                    "execution_id": execution_id,
                    "error": json.dumps(error, default=str)[:ERROR_PREVIEW_CHARS],
                    "email_sent": False,
                }
            return {
                "success": True,
                "execution_id": execution_id,
                "error": None,
                "email_sent": _email_sent(execution),
            }
        sleep(interval)

    log("execution.poll_timeout", level="warning", execution_id=execution_id, timeout=timeout)
    return {"success": False, "execution_id": execution_id, "error": "Execution timeout", "email_sent": False}


def run_and_wait(client, workflow_id, timeout=DEFAULT_TIMEOUT, interval=DEFAULT_INTERVAL,
                 sleep=time.sleep, clock=time.monotonic) -> dict:
    """Execute a workflow and wait for its result."""
    try:
        started = client.execute_workflow(workflow_id)
    except N8nError as e:
        log("execution.poll_error", level="error", workflow_id=workflow_id, error=str(e))
        return {"success": False, "execution_id": None, "error": str(e), "email_sent": False}

    execution_id = started.get("id") or started.get("executionId")
    if not execution_id:
        return {"success": False, "execution_id": None,
                "error": "n8n did not return an execution id", "email_sent": False}
    return wait_for_execution(client, execution_id, timeout=timeout, interval=interval,
                              sleep=sleep, clock=clock)
