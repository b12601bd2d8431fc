"""
Workflow Graph Model

Parses n8n workflow export JSON into WorkflowGraph / Node objects and
serializes them back. No validation happens here beyond the minimum needed
to address nodes: filling in missing configuration is the healing engine's job.

n8n workflow structure:
{
  "name": "Workflow Name",
  "nodes": [{"id", "name", "type", "position", "parameters", ...}],
  "connections": {"Source Node": {"main": [[{"node", "type", "index"}]]}},
  "settings": {...},
  "staticData": null
}

Every key the model does not interpret (node typeVersion, credentials,
workflow settings, ...) is carried in `extra` so that serialize(parse(raw))
reproduces the input.

Usage:
    from healer.graph_model import parse_graph, serialize_graph
    graph = parse_graph(raw)
    raw_again = serialize_graph(graph)
"""

import copy

# ─── n8n node type → node kind ───

NODE_KINDS = {
    "n8n-nodes-base.manualTrigger": "trigger.manual",
    "n8n-nodes-base.webhook": "trigger.webhook",
    "n8n-nodes-base.scheduleTrigger": "trigger.schedule",
    "n8n-nodes-base.httpRequest": "action.httpRequest",
    "n8n-nodes-base.set": "action.setValues",
    "n8n-nodes-base.respondToWebhook": "action.respond",
}

KIND_TYPES = {kind: node_type for node_type, kind in NODE_KINDS.items()}

MAIN = "main"

_NODE_FIELDS = ("id", "name", "type", "position", "parameters")
_GRAPH_FIELDS = ("name", "nodes", "connections")


class MalformedGraphError(Exception):
    """Raised when input cannot be parsed into a WorkflowGraph."""

    def __init__(self, message: str, node_index: int = None, field: str = None):
        self.node_index = node_index
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": str(self), "node_index": self.node_index, "field": self.field}


class Node:
    """One step of a workflow (trigger or action)."""

    def __init__(self, id=None, name=None, type="", parameters=None,
                 position=None, extra=None):
        self.id = id
        self.name = name
        self.type = type
        self.parameters = parameters if parameters is not None else {}
        self.position = position
        self.extra = extra if extra is not None else {}

    @property
    def kind(self) -> str:
        """Kind tag the healing rules dispatch on."""
        return NODE_KINDS.get(self.type, f"unknown:{self.type}")

    def __repr__(self):
        return f"Node(name={self.name!r}, kind={self.kind!r})"


class WorkflowGraph:
    """A workflow: ordered nodes plus the n8n connection map between node names."""

    def __init__(self, name="", nodes=None, connections=None, extra=None):
        self.name = name
        self.nodes = nodes if nodes is not None else []
        self.connections = connections if connections is not None else {}
        self.extra = extra if extra is not None else {}

    def __repr__(self):
        return f"WorkflowGraph(name={self.name!r}, nodes={len(self.nodes)})"


# ===== Parse / Serialize =====

def parse_graph(raw) -> WorkflowGraph:
    """Parse a raw n8n workflow dict into a WorkflowGraph.

    The input is deep-copied; the caller's object is never mutated.

    Raises:
        MalformedGraphError: raw is not an object, its name is not a string,
            nodes is not an array, a node is not an object, a node has a
            non-string id, name or type, a node has neither id nor name, or
            connections is present but not an object.
    """
    if not isinstance(raw, dict):
        raise MalformedGraphError("Workflow must be a JSON object", field="workflow")

    if raw.get("name") is not None and not isinstance(raw["name"], str):
        raise MalformedGraphError("Workflow 'name' must be a string", field="name")

    raw = copy.deepcopy(raw)

    nodes_raw = raw.get("nodes")
    if not isinstance(nodes_raw, (list, tuple)):
        raise MalformedGraphError("Workflow 'nodes' must be an array", field="nodes")

    nodes = []
    for index, item in enumerate(nodes_raw):
        if not isinstance(item, dict):
            raise MalformedGraphError(
                f"Node at index {index} must be an object", node_index=index, field="nodes"
            )
        for field in ("id", "name", "type"):
            if item.get(field) is not None and not isinstance(item[field], str):
                raise MalformedGraphError(
                    f"Node at index {index} has a non-string '{field}'",
                    node_index=index, field=field,
                )
        if item.get("id") in (None, "") and item.get("name") in (None, ""):
            raise MalformedGraphError(
                f"Node at index {index} has neither 'id' nor 'name'",
                node_index=index, field="id",
            )
        params = item.get("parameters")
        nodes.append(Node(
            id=item.get("id"),
            name=item.get("name"),
            type=item.get("type", ""),
            parameters=params if isinstance(params, dict) else {},
            position=item.get("position"),
            extra={k: v for k, v in item.items() if k not in _NODE_FIELDS},
        ))

    connections = raw.get("connections")
    if connections is None:
        connections = {}
    elif not isinstance(connections, dict):
        raise MalformedGraphError("Workflow 'connections' must be an object", field="connections")

    return WorkflowGraph(
        name=raw.get("name") or "",
        nodes=nodes,
        connections=connections,
        extra={k: v for k, v in raw.items() if k not in _GRAPH_FIELDS},
    )


def serialize_node(node: Node) -> dict:
    data = {}
    if node.id is not None:
        data["id"] = node.id
    if node.name is not None:
        data["name"] = node.name
    data["type"] = node.type
    if node.position is not None:
        data["position"] = copy.deepcopy(node.position)
    data["parameters"] = copy.deepcopy(node.parameters)
    data.update(copy.deepcopy(node.extra))
    return data


def serialize_graph(graph: WorkflowGraph) -> dict:
    """Serialize a WorkflowGraph back to n8n workflow JSON (a fresh dict)."""
    data = {
        "name": graph.name,
        "nodes": [serialize_node(n) for n in graph.nodes],
        "connections": copy.deepcopy(graph.connections),
    }
    data.update(copy.deepcopy(graph.extra))
    return data


# ===== Helpers =====

def find_node(graph: WorkflowGraph, name: str):
    """Return the node with the given name, or None."""
    for node in graph.nodes:
        if node.name == name:
            return node
    return None


def nodes_of_kind(graph: WorkflowGraph, kind: str) -> list:
    return [n for n in graph.nodes if n.kind == kind]


def has_kind(graph: WorkflowGraph, kind: str) -> bool:
    return any(n.kind == kind for n in graph.nodes)


def iter_edges(outputs):
    """Yield every edge dict from one source's connection entry (all types, all ports)."""
    if not isinstance(outputs, dict):
        return
    for ports in outputs.values():
        if not isinstance(ports, list):
            continue
        for port in ports:
            if not isinstance(port, list):
                continue
            for edge in port:
                if isinstance(edge, dict):
                    yield edge


def outgoing_targets(graph: WorkflowGraph, name: str) -> list:
    """Names of nodes the given node feeds via 'main' connections, in order."""
    outputs = graph.connections.get(name)
    if not isinstance(outputs, dict):
        return []
    targets = []
    for port in outputs.get(MAIN) or []:
        for edge in port or []:
            if isinstance(edge, dict) and edge.get("node"):
                targets.append(edge["node"])
    return targets


def terminal_node(graph: WorkflowGraph):
    """The last node (in node order) with no outgoing 'main' edges.

    Falls back to the last node when every node has a successor (cycles),
    and returns None for an empty graph.
    """
    if not graph.nodes:
        return None
    for node in reversed(graph.nodes):
        if node.name and not outgoing_targets(graph, node.name):
            return node
    return graph.nodes[-1]


def add_main_edge(graph: WorkflowGraph, source: str, target: str, index: int = 0):
    """Append a source → target edge on the source's first 'main' output port."""
    outputs = graph.connections.setdefault(source, {})
    ports = outputs.setdefault(MAIN, [])
    if not ports:
        ports.append([])
    ports[0].append({"node": target, "type": MAIN, "index": index})


def unique_node_name(graph: WorkflowGraph, base: str) -> str:
    """Return base, or base suffixed with a counter if a node already uses it."""
    taken = {n.name for n in graph.nodes}
    if base not in taken:
        return base
    counter = 1
    while f"{base} {counter}" in taken:
        counter += 1
    return f"{base} {counter}"
