"""
Tests for the healing rules — each rule against a minimal graph fixture.
"""

from healer.graph_model import Node, WorkflowGraph, outgoing_targets, parse_graph
from healer.isolation import EmailProvider, IsolationContext
from healer.rules import (
    DEFAULT_SCHEDULE_RULE,
    PLACEHOLDER_URL,
    RULE_REGISTRY,
    connection_integrity,
    email_send_rewrite,
    http_endpoint_default,
    isolation_naming,
    response_completeness,
    schedule_default,
    webhook_path,
)

USER = "abc12345-6789-4def-8000-000000000001"
OTHER_USER = "zzz99999-0000-4000-8000-000000000002"


def _node(name, node_type, parameters=None, id=None):
    return Node(id=id or name.lower().replace(" ", "_"), name=name,
                type=f"n8n-nodes-base.{node_type}", parameters=parameters or {},
                position=[250, 300])


def _edge(target):
    return {"node": target, "type": "main", "index": 0}


class TestRegistry:
    def test_order(self):
        assert [name for name, _ in RULE_REGISTRY] == [
            "isolation_naming",
            "webhook_path",
            "schedule_default",
            "http_endpoint_default",
            "email_send_rewrite",
            "response_completeness",
            "connection_integrity",
        ]

    def test_registry_is_immutable(self):
        assert isinstance(RULE_REGISTRY, tuple)


class TestIsolationNaming:
    def test_prefix_added(self):
        graph = WorkflowGraph(name="Email Workflow")
        fixes = isolation_naming(graph, IsolationContext(identity=USER))
        assert graph.name == "[USR-abc12345] Email Workflow"
        assert len(fixes) == 1
        assert fixes[0].target == "graph"

    def test_no_double_prefix(self):
        graph = WorkflowGraph(name="Email Workflow")
        ctx = IsolationContext(identity=USER)
        isolation_naming(graph, ctx)
        assert isolation_naming(graph, ctx) == []
        assert graph.name.count("[USR-") == 1

    def test_other_callers_prefix_is_replaced(self):
        graph = WorkflowGraph(name="[USR-zzz99999] Report")
        fixes = isolation_naming(graph, IsolationContext(identity=USER))
        assert graph.name == "[USR-abc12345] Report"
        assert len(fixes) == 1

    def test_identity_with_bracket_is_idempotent(self):
        graph = WorkflowGraph(name="Report")
        ctx = IsolationContext(identity="ab]cdefgh-xyz")
        assert len(isolation_naming(graph, ctx)) == 1
        assert graph.name == "[USR-ab]cdefg] Report"
        assert isolation_naming(graph, ctx) == []
        assert graph.name == "[USR-ab]cdefg] Report"

    def test_no_context_no_change(self):
        graph = WorkflowGraph(name="Plain")
        assert isolation_naming(graph, None) == []
        assert isolation_naming(graph, IsolationContext(identity="")) == []
        assert graph.name == "Plain"

    def test_empty_name_gets_placeholder(self):
        graph = WorkflowGraph(name="")
        isolation_naming(graph, IsolationContext(identity=USER))
        assert graph.name == "[USR-abc12345] Untitled Workflow"


class TestWebhookPath:
    def test_path_synthesized_from_seed(self):
        graph = WorkflowGraph(nodes=[_node("Webhook", "webhook")])
        fixes = webhook_path(graph, IsolationContext(seed=42))
        assert graph.nodes[0].parameters["path"] == "webhook-000042"
        assert len(fixes) == 1
        assert fixes[0].target == "Webhook"

    def test_path_namespaced_by_user(self):
        graph = WorkflowGraph(nodes=[_node("Webhook", "webhook")])
        webhook_path(graph, IsolationContext(identity=USER, seed=7))
        assert graph.nodes[0].parameters["path"] == "usr-abc12345-webhook-000007"

    def test_two_callers_never_collide(self):
        a = WorkflowGraph(nodes=[_node("Webhook", "webhook")])
        b = WorkflowGraph(nodes=[_node("Webhook", "webhook")])
        webhook_path(a, IsolationContext(identity=USER))
        webhook_path(b, IsolationContext(identity=OTHER_USER))
        assert a.nodes[0].parameters["path"] != b.nodes[0].parameters["path"]

    def test_multiple_webhooks_get_distinct_suffixes(self):
        graph = WorkflowGraph(nodes=[_node("Hook A", "webhook"), _node("Hook B", "webhook")])
        fixes = webhook_path(graph, IsolationContext(seed=1))
        paths = [n.parameters["path"] for n in graph.nodes]
        assert paths == ["webhook-000001", "webhook-000002"]
        assert len(fixes) == 2

    def test_existing_path_untouched(self):
        graph = WorkflowGraph(nodes=[_node("Webhook", "webhook", {"path": "mine"})])
        assert webhook_path(graph, IsolationContext(identity=USER)) == []
        assert graph.nodes[0].parameters["path"] == "mine"

    def test_same_seed_same_path(self):
        first = WorkflowGraph(nodes=[_node("Webhook", "webhook")])
        second = WorkflowGraph(nodes=[_node("Webhook", "webhook")])
        ctx = IsolationContext(seed=5)
        webhook_path(first, ctx)
        webhook_path(second, ctx)
        assert first.nodes[0].parameters == second.nodes[0].parameters


class TestScheduleDefault:
    def test_hourly_rule_added(self):
        graph = WorkflowGraph(nodes=[_node("Schedule", "scheduleTrigger")])
        fixes = schedule_default(graph)
        assert graph.nodes[0].parameters["rule"] == DEFAULT_SCHEDULE_RULE
        assert len(fixes) == 1
        assert "hourly" in fixes[0].description

    def test_rule_not_shared_between_nodes(self):
        graph = WorkflowGraph(nodes=[_node("S1", "scheduleTrigger"), _node("S2", "scheduleTrigger")])
        schedule_default(graph)
        graph.nodes[0].parameters["rule"]["interval"][0]["hoursInterval"] = 6
        assert graph.nodes[1].parameters["rule"] == DEFAULT_SCHEDULE_RULE

    def test_existing_rule_untouched(self):
        rule = {"interval": [{"field": "minutes", "minutesInterval": 5}]}
        graph = WorkflowGraph(nodes=[_node("Schedule", "scheduleTrigger", {"rule": rule})])
        assert schedule_default(graph) == []


class TestHttpEndpointDefault:
    def test_placeholder_url(self):
        graph = WorkflowGraph(nodes=[_node("Fetch Data", "httpRequest", {"method": "GET"})])
        fixes = http_endpoint_default(graph)
        assert graph.nodes[0].parameters["url"] == PLACEHOLDER_URL
        assert graph.nodes[0].parameters["method"] == "GET"
        assert len(fixes) == 1

    def test_existing_url_untouched(self):
        graph = WorkflowGraph(nodes=[_node("Fetch", "httpRequest", {"url": "https://x.test"})])
        assert http_endpoint_default(graph) == []

    def test_unknown_kinds_skipped(self):
        graph = WorkflowGraph(nodes=[_node("Slack", "slack"), _node("Code", "code")])
        for _name, rule in RULE_REGISTRY:
            assert rule(graph, IsolationContext()) == []


class TestEmailSendRewrite:
    def _ctx(self, **kwargs):
        return IsolationContext(identity=USER, email=EmailProvider(**kwargs))

    def test_rewrites_email_node(self):
        graph = WorkflowGraph(name="Alerts", nodes=[_node("Send EMAIL", "httpRequest", {"url": "https://x"})])
        fixes = email_send_rewrite(graph, self._ctx(api_key="re_test", to_email="me@example.com"))
        params = graph.nodes[0].parameters
        assert params["url"] == "https://api.resend.com/emails"
        assert params["method"] == "POST"
        headers = {p["name"]: p["value"] for p in params["headerParameters"]["parameters"]}
        assert headers["Authorization"] == "Bearer re_test"
        body = {p["name"]: p["value"] for p in params["bodyParameters"]["parameters"]}
        assert set(body) == {"from", "to", "subject", "html"}
        assert body["to"] == "me@example.com"
        assert body["from"] == "onboarding@resend.dev"
        assert [f.description for f in fixes] == ["Configured email provider"]

    def test_no_api_key_uses_env_expression(self):
        graph = WorkflowGraph(nodes=[_node("Email", "httpRequest")])
        email_send_rewrite(graph, self._ctx())
        headers = graph.nodes[0].parameters["headerParameters"]["parameters"]
        assert headers[0]["value"] == "=Bearer {{ $env.RESEND_API_KEY }}"

    def test_only_http_nodes_named_email(self):
        graph = WorkflowGraph(nodes=[
            _node("Fetch Data", "httpRequest", {"url": "https://x"}),
            _node("Email Set", "set"),
        ])
        assert email_send_rewrite(graph, self._ctx()) == []
        assert graph.nodes[0].parameters == {"url": "https://x"}

    def test_idempotent(self):
        graph = WorkflowGraph(name="g", nodes=[_node("Send Email", "httpRequest")])
        ctx = self._ctx(api_key="k")
        assert len(email_send_rewrite(graph, ctx)) == 1
        assert email_send_rewrite(graph, ctx) == []


class TestResponseCompleteness:
    def _graph(self):
        return WorkflowGraph(
            nodes=[_node("Webhook", "webhook", {"path": "p"}), _node("Process", "set")],
            connections={"Webhook": {"main": [[_edge("Process")]]}},
        )

    def test_adds_response_after_terminal(self):
        graph = self._graph()
        fixes = response_completeness(graph)
        assert len(fixes) == 1
        assert fixes[0].description == "Added webhook response handler"
        respond = graph.nodes[-1]
        assert respond.kind == "action.respond"
        assert respond.name == "Respond Success"
        assert respond.parameters["respondWith"] == "json"
        assert respond.position == [450, 300]
        assert outgoing_targets(graph, "Process") == ["Respond Success"]
        assert graph.nodes[0].parameters["responseMode"] == "responseNode"

    def test_keeps_existing_edges_of_terminal(self):
        graph = WorkflowGraph(
            nodes=[_node("Webhook", "webhook", {"path": "p"}), _node("A", "set"), _node("B", "set")],
            connections={"Webhook": {"main": [[_edge("A"), _edge("B")]]}},
        )
        response_completeness(graph)
        assert outgoing_targets(graph, "Webhook") == ["A", "B"]
        assert outgoing_targets(graph, "B") == ["Respond Success"]

    def test_single_webhook_graph(self):
        graph = WorkflowGraph(nodes=[_node("Webhook", "webhook", {"path": "p"})])
        response_completeness(graph)
        assert outgoing_targets(graph, "Webhook") == ["Respond Success"]

    def test_name_collision_avoided(self):
        graph = self._graph()
        graph.nodes.append(_node("Respond Success", "set", id="respond-success"))
        response_completeness(graph)
        respond = graph.nodes[-1]
        assert respond.name == "Respond Success 1"
        assert respond.id == "respond-success-2"

    def test_no_webhook_no_response(self):
        graph = WorkflowGraph(nodes=[_node("Schedule", "scheduleTrigger")])
        assert response_completeness(graph) == []
        assert len(graph.nodes) == 1

    def test_existing_response_node(self):
        graph = self._graph()
        graph.nodes.append(_node("Reply", "respondToWebhook"))
        assert response_completeness(graph) == []


class TestConnectionIntegrity:
    def test_removes_missing_source(self):
        graph = parse_graph({"nodes": [{"id": "a", "name": "A"}], "connections": {
            "Ghost": {"main": [[_edge("A")]]},
        }})
        fixes = connection_integrity(graph)
        assert graph.connections == {}
        assert fixes[0].target == "Ghost"

    def test_removes_missing_targets_only(self):
        graph = parse_graph({
            "nodes": [{"id": "a", "name": "A"}, {"id": "b", "name": "B"}],
            "connections": {"A": {"main": [[_edge("B"), _edge("Gone")]]}},
        })
        fixes = connection_integrity(graph)
        assert outgoing_targets(graph, "A") == ["B"]
        assert len(fixes) == 1
        assert "1 dangling" in fixes[0].description

    def test_non_object_edges_reported(self):
        graph = parse_graph({
            "nodes": [{"id": "a", "name": "A"}, {"id": "b", "name": "B"}],
            "connections": {"A": {"main": [[_edge("B"), "B", None, {"node": ["B"]}]]}},
        })
        fixes = connection_integrity(graph)
        assert graph.connections["A"]["main"] == [[_edge("B")]]
        assert len(fixes) == 1
        assert "Removed 3 dangling" in fixes[0].description

    def test_clean_graph_untouched(self):
        graph = parse_graph({
            "nodes": [{"id": "a", "name": "A"}, {"id": "b", "name": "B"}],
            "connections": {"A": {"main": [[_edge("B")]]}},
        })
        assert connection_integrity(graph) == []
