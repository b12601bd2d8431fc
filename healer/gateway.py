"""
n8n Deployment Gateway

Takes a healed WorkflowGraph, converts it to the payload the n8n public API
accepts, and creates (or updates) it on the remote instance.

Output:
    DeployResult with:
        - status: "deployed" | "rejected" | "error"
        - remote_id: str | None — n8n workflow id
        - message: str — error detail when not deployed

The n8n API refuses read-only fields on create/update, so they are stripped
from the payload. No retries here: the caller decides whether to try again.
"""

from healer.graph_model import serialize_graph
from healer.logger import log
from healer.n8n_client import N8nError

DEPLOYED = "deployed"
REJECTED = "rejected"
ERROR = "error"

# Fields n8n owns; sending them makes POST/PUT /workflows fail validation
READ_ONLY_FIELDS = (
    "id", "active", "tags", "versionId", "meta", "pinData",
    "createdAt", "updatedAt", "isArchived", "triggerCount", "shared",
)

# Status codes meaning "n8n understood the request and refused the workflow"
REJECTION_CODES = {400, 409, 422}


class DeployResult:
    def __init__(self, status: str, remote_id=None, message: str = "", activated: bool = False):
        self.status = status
        self.remote_id = remote_id
        self.message = message
        self.activated = activated

    @property
    def deployed(self) -> bool:
        return self.status == DEPLOYED

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "remote_id": self.remote_id,
            "message": self.message,
            "activated": self.activated,
        }


def to_wire(graph) -> dict:
    """Serialize a graph into an n8n create/update payload."""
    payload = serialize_graph(graph)
    for field in READ_ONLY_FIELDS:
        payload.pop(field, None)
    if not isinstance(payload.get("settings"), dict):
        payload["settings"] = {}
    return payload


def deploy(graph, client, workflow_id=None, activate=False) -> DeployResult:
    """Create (or update when workflow_id is given) the workflow on n8n.

    Args:
        graph: Healed WorkflowGraph.
        client: N8nClient.
        workflow_id: Existing remote id to update instead of creating.
        activate: Activate the workflow after a successful create/update.

    Returns:
        DeployResult. N8nError never escapes: it is mapped to rejected/error.
    """
    payload = to_wire(graph)
    remote_id = workflow_id
    try:
        if workflow_id:
            data = client.update_workflow(workflow_id, payload)
        else:
            data = client.create_workflow(payload)
        remote_id = str(data.get("id") or workflow_id or "")
        if not remote_id:
            result = DeployResult(ERROR, message="n8n response did not include a workflow id")
        else:
            result = DeployResult(DEPLOYED, remote_id=remote_id)
            if activate:
                client.activate_workflow(remote_id)
                result.activated = True
    except N8nError as e:
        status = REJECTED if e.status_code in REJECTION_CODES else ERROR
        message = f"{e}: {e.body}" if e.body else str(e)
        result = DeployResult(status, remote_id=remote_id or None, message=message)

    log("deploy.result", level="info" if result.deployed else "warning",
        workflow=graph.name, status=result.status, remote_id=result.remote_id,
        message=result.message)
    return result
