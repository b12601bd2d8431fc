"""
n8n REST Client — Pure httpx.

Connects the healer to a hosted n8n instance's public API for creating,
updating, activating and executing workflows, and reading executions.

Reads N8N_API_URL and N8N_API_KEY from environment.
Raises N8nError if credentials not configured or API calls fail.
"""
from __future__ import annotations

import os
from typing import Optional

import httpx
from dotenv import load_dotenv


class N8nError(Exception):
    """Raised when an n8n API call fails or credentials are missing."""

    def __init__(self, message: str, status_code: int = 0, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class N8nClient:
    """Lightweight n8n public API client using httpx."""

    def __init__(self, base_url: str, api_key: str, timeout: int = 30):
        base_url = base_url.rstrip("/")
        if not base_url.endswith("/api/v1"):
            base_url = f"{base_url}/api/v1"
        self.base_url = base_url
        self.api_key = api_key
        self.timeout = timeout
        self.headers = {
            "X-N8N-API-KEY": api_key,
            "Content-Type": "application/json",
        }

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[dict] = None,
        json_body: Optional[dict] = None,
    ) -> dict | list:
        """Execute an HTTP request against the n8n API."""
        url = f"{self.base_url}{path}"
        try:
            resp = httpx.request(
                method,
                url,
                headers=self.headers,
                params=params,
                json=json_body,
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            raise N8nError(f"n8n API {method} {path} failed: {e}") from e
        if resp.status_code >= 400:
            raise N8nError(
                f"n8n API {method} {path} failed: {resp.status_code}",
                status_code=resp.status_code,
                body=resp.text,
            )
        if resp.status_code == 204 or not resp.text.strip():
            return {}
        return resp.json()

    # ── Workflows ─────────────────────────────────────────────

    def create_workflow(self, workflow: dict) -> dict:
        """Create a workflow. Returns the stored workflow (with its new id)."""
        return self._request("POST", "/workflows", json_body=workflow)

    def get_workflow(self, workflow_id: str) -> dict:
        return self._request("GET", f"/workflows/{workflow_id}")

    def update_workflow(self, workflow_id: str, workflow: dict) -> dict:
        """Replace a workflow's definition."""
        return self._request("PUT", f"/workflows/{workflow_id}", json_body=workflow)

    def activate_workflow(self, workflow_id: str) -> dict:
        return self._request("POST", f"/workflows/{workflow_id}/activate")

    def deactivate_workflow(self, workflow_id: str) -> dict:
        return self._request("POST", f"/workflows/{workflow_id}/deactivate")

    def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow. Returns True on success."""
        self._request("DELETE", f"/workflows/{workflow_id}")
        return True

    def list_workflows(self, active: Optional[bool] = None, limit: int = 100) -> list:
        params = {"limit": limit}
        if active is not None:
            params["active"] = str(active).lower()
        result = self._request("GET", "/workflows", params=params)
        return result.get("data", []) if isinstance(result, dict) else result

    def execute_workflow(self, workflow_id: str, data: Optional[dict] = None) -> dict:
        """Trigger a single run of a workflow. Returns the execution stub (with id)."""
        body = {"workflowData": data} if data else None
        return self._request("POST", f"/workflows/{workflow_id}/execute", json_body=body)

    # ── Executions ────────────────────────────────────────────

    def get_execution(self, execution_id: str, include_data: bool = True) -> dict:
        params = {"includeData": "true"} if include_data else None
        return self._request("GET", f"/executions/{execution_id}", params=params)

    def list_executions(self, workflow_id: Optional[str] = None, limit: int = 20) -> list:
        params = {"limit": limit}
        if workflow_id:
            params["workflowId"] = workflow_id
        result = self._request("GET", "/executions", params=params)
        return result.get("data", []) if isinstance(result, dict) else result


# ── Singleton ─────────────────────────────────────────────────

_client: Optional[N8nClient] = None


def get_n8n_client() -> N8nClient:
    """Return shared N8nClient instance.

    Raises N8nError if N8N_API_URL or N8N_API_KEY is not configured.
    """
    global _client
    if _client is not None:
        return _client

    load_dotenv()
    base_url = os.environ.get("N8N_API_URL", "").strip()
    api_key = os.environ.get("N8N_API_KEY", "").strip()
    if not base_url or not api_key:
        raise N8nError("N8N_API_URL / N8N_API_KEY not configured")

    _client = N8nClient(base_url=base_url, api_key=api_key)
    return _client
