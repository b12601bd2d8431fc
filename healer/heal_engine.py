"""
Workflow Healing Engine

Runs every rule of the registry, in order, against one parsed workflow graph
and reports the healed graph, the fixes applied and a confidence score.

Input:
    raw (dict) — n8n workflow JSON (may be incomplete)
    ctx (IsolationContext, optional) — caller identity, seed, email provider

Output:
    HealResult with:
        - graph: WorkflowGraph — the healed graph
        - fixes: list[FixRecord] — in rule application order
        - confidence: float — min(0.95, 0.80 + 0.03 * len(fixes))

Deterministic. No network calls. No clock reads. The input dict is never mutated.
"""

from healer.graph_model import MalformedGraphError, parse_graph, serialize_graph
from healer.isolation import IsolationContext
from healer.logger import log
from healer.rules import RULE_REGISTRY

CONFIDENCE_FLOOR = 0.80
CONFIDENCE_STEP = 0.03
CONFIDENCE_CAP = 0.95


class HealResult:
    """Outcome of one healing run."""

    def __init__(self, graph, fixes, confidence):
        self.graph = graph
        self.fixes = fixes
        self.confidence = confidence

    def to_dict(self) -> dict:
        return {
            "graph": serialize_graph(self.graph),
            "fixes": [f.to_dict() for f in self.fixes],
            "confidence": self.confidence,
        }


def compute_confidence(fix_count: int) -> float:
    """0.80 for an untouched graph, +0.03 per fix, capped at 0.95."""
    return round(min(CONFIDENCE_CAP, CONFIDENCE_FLOOR + CONFIDENCE_STEP * fix_count), 4)


def heal(raw, ctx=None, rules=RULE_REGISTRY) -> HealResult:
    """Heal one workflow definition.

    Args:
        raw: n8n workflow dict (deep-copied by the parser, never mutated).
        ctx: Optional IsolationContext. Without one, no user namespacing is applied.
        rules: Ordered (name, rule) pairs; defaults to the shared registry.

    Returns:
        HealResult. An already-valid graph yields no fixes and confidence 0.80.

    Raises:
        MalformedGraphError: raw cannot be parsed. Nothing is healed in that case.
    """
    ctx = ctx if ctx is not None else IsolationContext()
    graph = parse_graph(raw)

    fixes = []
    for _name, rule in rules:
        fixes.extend(rule(graph, ctx))

    confidence = compute_confidence(len(fixes))
    log("heal.complete", workflow=graph.name, fix_count=len(fixes),
        confidence=confidence, rules=[f.rule for f in fixes])
    return HealResult(graph, fixes, confidence)


def heal_many(raws, ctx=None) -> list:
    """Heal a batch of workflows; one malformed definition does not stop the rest.

    Returns:
        List of dicts, one per input, in order:
            {"success": True, "result": HealResult}
            {"success": False, "error": MalformedGraphError}
    """
    results = []
    for index, raw in enumerate(raws):
        try:
            results.append({"success": True, "result": heal(raw, ctx)})
        except MalformedGraphError as e:
            log("heal.malformed", level="warning", index=index, error=str(e),
                node_index=e.node_index, field=e.field)
            results.append({"success": False, "error": e})
    return results
