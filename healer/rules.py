"""
Healing Rules

Deterministic structural repairs for n8n workflow graphs. Each rule takes the
whole graph plus an IsolationContext, mutates the graph in place, and returns
the FixRecords describing what it changed (empty list when nothing was needed).

Rules run in registry order; later rules rely on earlier structural guarantees:
    isolation_naming       — prefix graph name with "[USR-<tag>] "
    webhook_path           — synthesize missing webhook paths (user-namespaced)
    schedule_default       — default hourly rule for schedule triggers
    http_endpoint_default  — placeholder URL for HTTP nodes without one
    email_send_rewrite     — point "email" HTTP nodes at the email provider
    response_completeness  — add a Respond to Webhook node after the terminal node
    connection_integrity   — drop connections that reference missing nodes

Parameters read/written per node kind:
    trigger.webhook     path (webhook_path), responseMode (response_completeness)
    trigger.schedule    rule
    action.httpRequest  url (http_endpoint_default); url, method, sendHeaders,
                        headerParameters, sendBody, specifyBody, bodyParameters
                        (email_send_rewrite)
    action.respond      respondWith, responseBody

Nodes of unrecognized kind are skipped silently. No network calls, no clock.
"""

import re

from healer.graph_model import (
    KIND_TYPES, Node, add_main_edge, has_kind,
    nodes_of_kind, terminal_node, unique_node_name,
)
from healer.isolation import IsolationContext

WEBHOOK = "trigger.webhook"
SCHEDULE = "trigger.schedule"
HTTP_REQUEST = "action.httpRequest"
RESPOND = "action.respond"

USER_PREFIX_PATTERN = re.compile(r"^\[USR-([^\]]*)\] ?")
EMAIL_INTENT = "email"
UNTITLED_WORKFLOW = "Untitled Workflow"

DEFAULT_SCHEDULE_RULE = {"interval": [{"field": "hours", "hoursInterval": 1}]}
PLACEHOLDER_URL = "https://jsonplaceholder.typicode.com/posts/1"

RESPONSE_NODE_NAME = "Respond Success"
RESPONSE_BODY = '={{ { "status": "success", "timestamp": $now.toISO() } }}'
RESPONSE_X_OFFSET = 200
DEFAULT_RESPONSE_POSITION = [650, 300]


class FixRecord:
    """One change applied by a rule."""

    def __init__(self, rule: str, target: str, description: str):
        self.rule = rule
        self.target = target
        self.description = description

    def to_dict(self) -> dict:
        return {"rule": self.rule, "target": self.target, "description": self.description}

    def __eq__(self, other):
        return isinstance(other, FixRecord) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return f"FixRecord({self.rule!r}, {self.target!r}, {self.description!r})"


def _context(ctx):
    return ctx if ctx is not None else IsolationContext()


# ===== Naming / Isolation =====

def isolation_naming(graph, ctx=None):
    """Prefix the graph name with the caller tag: "[USR-<tag>] <name>"."""
    ctx = _context(ctx)
    prefix = ctx.name_prefix()
    if not prefix:
        return []

    if (graph.name or "").startswith(prefix):
        return []

    match = USER_PREFIX_PATTERN.match(graph.name or "")
    if match:
        # Prefixed for a different caller: re-tag instead of stacking prefixes
        base = graph.name[match.end():] or UNTITLED_WORKFLOW
        graph.name = f"{prefix}{base}"
        return [FixRecord("isolation_naming", "graph",
                          f"Re-tagged workflow name for user {ctx.tag}")]

    graph.name = f"{prefix}{graph.name or UNTITLED_WORKFLOW}"
    return [FixRecord("isolation_naming", "graph", "Applied user isolation naming")]


# ===== Trigger completeness =====

def webhook_path(graph, ctx=None):
    """Synthesize a path for every webhook trigger that lacks one."""
    ctx = _context(ctx)
    sequence = ctx.new_sequence()
    fixes = []
    for node in nodes_of_kind(graph, WEBHOOK):
        if node.parameters.get("path"):
            continue
        node.parameters["path"] = f"{ctx.path_prefix()}webhook-{sequence.next_suffix()}"
        fixes.append(FixRecord("webhook_path", node.name,
                               f"Added webhook path '{node.parameters['path']}' to {node.name}"))
    return fixes


def schedule_default(graph, ctx=None):
    """Give every schedule trigger without a rule an hourly interval."""
    fixes = []
    for node in nodes_of_kind(graph, SCHEDULE):
        if node.parameters.get("rule"):
            continue
        node.parameters["rule"] = {
            "interval": [dict(i) for i in DEFAULT_SCHEDULE_RULE["interval"]]
        }
        fixes.append(FixRecord("schedule_default", node.name,
                               f"Added hourly schedule rule to {node.name}"))
    return fixes


# ===== Endpoint completeness =====

def http_endpoint_default(graph, ctx=None):
    """Give every HTTP Request node without a URL a harmless placeholder."""
    fixes = []
    for node in nodes_of_kind(graph, HTTP_REQUEST):
        if node.parameters.get("url"):
            continue
        node.parameters["url"] = PLACEHOLDER_URL
        fixes.append(FixRecord("http_endpoint_default", node.name,
                               f"Added placeholder URL to {node.name}"))
    return fixes


def email_provider_parameters(graph, ctx) -> dict:
    """HTTP Request parameters that send one email through the provider."""
    email = ctx.email
    return {
        "url": email.endpoint,
        "method": "POST",
        "sendHeaders": True,
        "headerParameters": {
            "parameters": [
                {"name": "Authorization", "value": email.authorization_header()},
                {"name": "Content-Type", "value": "application/json"},
            ]
        },
        "sendBody": True,
        "specifyBody": "keypair",
        "bodyParameters": {
            "parameters": [
                {"name": "from", "value": email.from_email},
                {"name": "to", "value": email.recipient()},
                {"name": "subject", "value": email.subject},
                {"name": "html", "value": f"<p>Sent by workflow {graph.name}</p>"},
            ]
        },
    }


def email_send_rewrite(graph, ctx=None):
    """Rewrite HTTP nodes named like an email step to call the email provider."""
    ctx = _context(ctx)
    fixes = []
    for node in nodes_of_kind(graph, HTTP_REQUEST):
        if EMAIL_INTENT not in (node.name or "").lower():
            continue
        target = email_provider_parameters(graph, ctx)
        if all(node.parameters.get(k) == v for k, v in target.items()):
            continue
        node.parameters.update(target)
        fixes.append(FixRecord("email_send_rewrite", node.name, "Configured email provider"))
    return fixes


# ===== Response completeness =====

def _response_node_id(graph):
    taken = {n.id for n in graph.nodes}
    candidate = "respond-success"
    counter = 1
    while candidate in taken:
        counter += 1
        candidate = f"respond-success-{counter}"
    return candidate


def _response_position(anchor):
    position = anchor.position if anchor is not None else None
    if (isinstance(position, (list, tuple)) and len(position) == 2
            and all(isinstance(p, (int, float)) for p in position)):
        return [position[0] + RESPONSE_X_OFFSET, position[1]]
    return list(DEFAULT_RESPONSE_POSITION)


def response_completeness(graph, ctx=None):
    """Add a Respond to Webhook node when webhooks exist but nothing answers them."""
    webhooks = nodes_of_kind(graph, WEBHOOK)
    if not webhooks or has_kind(graph, RESPOND):
        return []

    anchor = terminal_node(graph)
    name = unique_node_name(graph, RESPONSE_NODE_NAME)
    graph.nodes.append(Node(
        id=_response_node_id(graph),
        name=name,
        type=KIND_TYPES[RESPOND],
        parameters={"respondWith": "json", "responseBody": RESPONSE_BODY},
        position=_response_position(anchor),
        extra={"typeVersion": 1},
    ))
    if anchor is not None and anchor.name:
        add_main_edge(graph, anchor.name, name)

    for node in webhooks:
        node.parameters["responseMode"] = "responseNode"

    return [FixRecord("response_completeness", name, "Added webhook response handler")]


# ===== Connection integrity =====

def _edge_target(edge):
    """Target node name of an edge; None for anything that is not a valid edge."""
    if isinstance(edge, dict) and isinstance(edge.get("node"), str):
        return edge["node"]
    return None


def connection_integrity(graph, ctx=None):
    """Remove connection sources and edges that reference nodes not in the graph."""
    names = {n.name for n in graph.nodes if n.name}
    fixes = []
    for source in list(graph.connections):
        outputs = graph.connections[source]
        if source not in names or not isinstance(outputs, dict):
            del graph.connections[source]
            fixes.append(FixRecord("connection_integrity", source,
                                   f"Removed connections from missing node '{source}'"))
            continue

        removed = 0
        for ports in outputs.values():
            if not isinstance(ports, list):
                continue
            for i, port in enumerate(ports):
                if not isinstance(port, list):
                    continue
                kept = [e for e in port if _edge_target(e) in names]
                removed += len(port) - len(kept)
                ports[i] = kept
        if removed:
            fixes.append(FixRecord("connection_integrity", source,
                                   f"Removed {removed} dangling connection(s) from {source}"))
    return fixes


# Registry: immutable, shared read-only across healing runs
RULE_REGISTRY = (
    ("isolation_naming", isolation_naming),
    ("webhook_path", webhook_path),
    ("schedule_default", schedule_default),
    ("http_endpoint_default", http_endpoint_default),
    ("email_send_rewrite", email_send_rewrite),
    ("response_completeness", response_completeness),
    ("connection_integrity", connection_integrity),
)
