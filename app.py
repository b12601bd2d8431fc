"""
Workflow Healer — FastAPI Application

Endpoints:
  GET  /health         — liveness probe
  POST /heal           — n8n workflow JSON → healed workflow + fixes + confidence
  POST /deploy/n8n     — heal, then create/update the workflow on n8n
  GET  /deploy/status  — recent deployments for a caller identity

HTTP status codes:
  200 — success (deploy outcome is reported in the body: deployed/rejected/error)
  422 — malformed workflow (body: error, node_index, field) or invalid request
  503 — n8n gateway not configured
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from db.session import get_db, check_db
from db.repo import record_heal_run, record_deployment, list_deployments
from healer.gateway import deploy
from healer.graph_model import MalformedGraphError
from healer.heal_engine import heal
from healer.isolation import context_from_env
from healer.logger import log
from healer.n8n_client import N8nClient, N8nError, get_n8n_client


@asynccontextmanager
async def lifespan(_app: FastAPI):
    log("startup.checking_database")
    check_db()
    log("startup.ready")
    yield


app = FastAPI(
    title="Workflow Healer",
    version="1.0.0",
    lifespan=lifespan,
)


# ─────────────────────────────────────────
# Request Models
# ─────────────────────────────────────────

class HealRequest(BaseModel):
    workflow: dict                         # n8n workflow export JSON
    identity: Optional[str] = None         # caller id used for isolation naming
    seed: Optional[int] = None             # webhook path suffix seed; fresh per request when omitted
    to_email: Optional[str] = None         # recipient for email-sending nodes
    subject: Optional[str] = None


class DeployRequest(HealRequest):
    workflow_id: Optional[str] = None      # update this n8n workflow instead of creating
    activate: bool = False
    n8n_url: Optional[str] = None          # overrides N8N_API_URL
    api_key: Optional[str] = None          # overrides N8N_API_KEY


# ─────────────────────────────────────────
# Helpers
# ─────────────────────────────────────────

def _heal_or_422(request: HealRequest):
    ctx = context_from_env(
        identity=request.identity, seed=request.seed,
        to_email=request.to_email, subject=request.subject,
    )
    try:
        return heal(request.workflow, ctx)
    except MalformedGraphError as e:
        log("heal.malformed", level="warning", identity=request.identity,
            error=str(e), node_index=e.node_index, field=e.field)
        raise HTTPException(status_code=422, detail=e.to_dict())


def _record_heal(db: Session, result, identity):
    """Persist a heal run; storage problems never fail the heal itself."""
    try:
        run = record_heal_run(db, result, identity=identity)
        db.commit()
        return str(run.id) if run.id else None
    except Exception as e:
        db.rollback()
        log("db.record_failed", level="error", table="heal_runs", error=str(e))
        return None


def _resolve_client(request: DeployRequest) -> N8nClient:
    if request.n8n_url and request.api_key:
        return N8nClient(request.n8n_url, request.api_key)
    try:
        return get_n8n_client()
    except N8nError as e:
        raise HTTPException(status_code=503, detail=str(e))


# ─────────────────────────────────────────
# Endpoints
# ─────────────────────────────────────────

@app.get("/health")
def health():
    return {"ok": True}


@app.post("/heal")
def heal_workflow(request: HealRequest, db: Session = Depends(get_db)):
    """Heal a workflow definition without deploying it."""
    result = _heal_or_422(request)
    heal_run_id = _record_heal(db, result, request.identity)
    return {**result.to_dict(), "heal_run_id": heal_run_id}


@app.post("/deploy/n8n")
def deploy_n8n(request: DeployRequest, db: Session = Depends(get_db)):
    """
    Heal a workflow and deploy it to n8n via the public REST API.

    Records the heal run and the deployment outcome.
    """
    client = _resolve_client(request)
    result = _heal_or_422(request)
    heal_run_id = _record_heal(db, result, request.identity)

    outcome = deploy(result.graph, client, workflow_id=request.workflow_id,
                     activate=request.activate)

    try:
        record_deployment(db, outcome, heal_run_id=heal_run_id, identity=request.identity)
        db.commit()
    except Exception as e:
        db.rollback()
        log("db.record_failed", level="error", table="deployments", error=str(e))

    return {
        "success": outcome.deployed,
        "heal": {**result.to_dict(), "heal_run_id": heal_run_id},
        "deploy": outcome.to_dict(),
    }


@app.get("/deploy/status")
def deploy_status(identity: str = Query(..., min_length=1),
                  limit: int = Query(20, ge=1, le=100),
                  db: Session = Depends(get_db)):
    """Recent deployments recorded for a caller identity."""
    deployments = list_deployments(db, identity, limit=limit)
    return {
        "identity": identity,
        "total_deployments": len(deployments),
        "deployments": [
            {
                "id": str(d.id),
                "heal_run_id": str(d.heal_run_id) if d.heal_run_id else None,
                "target": d.target,
                "external_id": d.external_id,
                "status": d.status,
                "message": d.message,
                "created_at": d.created_at.isoformat() if d.created_at else None,
            }
            for d in deployments
        ],
    }
