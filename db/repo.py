"""
Database Repository — Heal/Deploy Persistence Layer

    record_heal_run    — insert one heal_runs row from a HealResult
    record_deployment  — insert one deployments row from a DeployResult
    list_deployments   — recent deployments for a caller identity

The caller manages commit/rollback.
"""

from sqlalchemy.orm import Session

from db.models import HealRun, Deployment


def record_heal_run(db: Session, result, identity=None) -> HealRun:
    """Insert a heal_runs row for a HealResult and flush to get its id."""
    run = HealRun(
        identity=identity,
        workflow_name=result.graph.name,
        fix_count=len(result.fixes),
        confidence=result.confidence,
        fixes=[f.to_dict() for f in result.fixes],
    )
    db.add(run)
    db.flush()
    return run


def record_deployment(db: Session, deploy_result, heal_run_id=None, identity=None) -> Deployment:
    deployment = Deployment(
        heal_run_id=heal_run_id,
        identity=identity,
        target="n8n",
        external_id=deploy_result.remote_id,
        status=deploy_result.status,
        message=deploy_result.message or None,
    )
    db.add(deployment)
    db.flush()
    return deployment


def list_deployments(db: Session, identity: str, limit: int = 20) -> list:
    return (
        db.query(Deployment)
        .filter(Deployment.identity == identity)
        .order_by(Deployment.created_at.desc())
        .limit(limit)
        .all()
    )
