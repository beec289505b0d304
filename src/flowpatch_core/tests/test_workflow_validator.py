# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Tests for flowpatch_core.workflow.validator.

Workflows are built inline from small helpers and checked against the bundled
capability catalog.
"""

import copy
from typing import Any, Dict, List, Optional

import pytest

from flowpatch_common.capabilities import CapabilityDescriptor, OutputSlot, StaticCapabilityProvider
from flowpatch_core.workflow.errors import WorkflowShapeError
from flowpatch_core.workflow.validator import (
    Finding,
    Severity,
    StructuralValidator,
    ValidationReport,
    validate,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _node(name: str, node_type: str = "n8n-nodes-base.set", **extra: Any) -> Dict[str, Any]:
    node = {
        "id": f"id-{name.lower().replace(' ', '-')}",
        "name": name,
        "type": node_type,
        "typeVersion": 1,
        "position": [0, 0],
        "parameters": {},
    }
    node.update(extra)
    return node


def _workflow(nodes: List[Dict[str, Any]], connections: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"id": "wf-1", "name": "Test", "nodes": nodes, "connections": connections or {}}


def _main(*branches: List[str]) -> Dict[str, Any]:
    return {"main": [[{"node": t, "type": "main", "index": 0} for t in branch] for branch in branches]}


def _errors(report: ValidationReport) -> List[Finding]:
    return [f for f in report.findings if f.severity == Severity.ERROR]


def _warnings(report: ValidationReport) -> List[Finding]:
    return [f for f in report.findings if f.severity == Severity.WARNING]


def _messages(findings: List[Finding]) -> str:
    return "\n".join(f.message for f in findings)


WEBHOOK = "n8n-nodes-base.webhook"
HTTP = "n8n-nodes-base.httpRequest"
MANUAL = "n8n-nodes-base.manualTrigger"


# ---------------------------------------------------------------------------
# Shape
# ---------------------------------------------------------------------------


class TestShape:
    @pytest.mark.parametrize(
        "workflow, match",
        [
            ([], "must be a mapping"),
            ("workflow", "must be a mapping"),
            ({"connections": {}}, "nodes array"),
            ({"nodes": {}, "connections": {}}, "nodes array"),
            ({"nodes": [], "connections": []}, "connections object"),
        ],
    )
    def test_unparseable_input_raises(self, validator, workflow, match):
        with pytest.raises(WorkflowShapeError, match=match):
            validator.validate(workflow)

    def test_shape_error_is_value_error(self, validator):
        with pytest.raises(ValueError):
            validator.validate(None)

    def test_missing_connections_treated_as_empty(self, validator):
        report = validator.validate({"nodes": [_node("Start", MANUAL)]})
        assert report.valid
        assert report.statistics.total_connections == 0

    def test_empty_workflow_warns(self, validator):
        report = validator.validate(_workflow([]))
        assert report.valid
        assert [w.message for w in _warnings(report)] == ["Workflow has no nodes"]

    def test_non_mapping_node_entry(self, validator):
        report = validator.validate(_workflow([_node("Start", MANUAL), "oops"]))
        assert "Node at index 1 must be an object" in _messages(_errors(report))

    def test_node_without_name(self, validator):
        nameless = _node("x", MANUAL)
        del nameless["name"]
        report = validator.validate(_workflow([nameless]))
        assert "has no name" in _messages(_errors(report))

    def test_node_without_type(self, validator):
        untyped = _node("Start")
        del untyped["type"]
        report = validator.validate(_workflow([untyped]))
        assert 'Node "Start" has no type' in _messages(_errors(report))


# ---------------------------------------------------------------------------
# Names and types
# ---------------------------------------------------------------------------


class TestNamesAndTypes:
    def test_duplicate_names(self, validator):
        report = validator.validate(_workflow([_node("A", MANUAL), _node("A", id="other")]))
        assert 'Duplicate node name: "A"' in _messages(_errors(report))

    def test_duplicate_ids(self, validator):
        report = validator.validate(_workflow([_node("A", MANUAL, id="same"), _node("B", id="same")]))
        assert 'Duplicate node ID: "same"' in _messages(_errors(report))

    def test_unknown_type_with_suggestion(self, validator):
        report = validator.validate(_workflow([_node("Hook", "n8n-nodes-base.webhok")]))
        (error,) = [e for e in _errors(report) if "Unknown node type" in e.message]
        assert error.message == 'Unknown node type: "n8n-nodes-base.webhok"'
        assert "nodes-base.webhook" in error.suggestion
        assert error.node_name == "Hook"

    @pytest.mark.parametrize(
        "node_type, expected",
        [
            ("n8n-nodes-base.webhok", "n8n-nodes-base.webhook"),
            ("nodes-base.webhok", "nodes-base.webhook"),
            ("webhok", "n8n-nodes-base.webhook"),
        ],
    )
    def test_unknown_type_candidates(self, validator, node_type, expected):
        report = validator.validate(_workflow([_node("Hook", node_type)]))
        (error,) = [e for e in _errors(report) if "Unknown node type" in e.message]
        assert error.details["field"] == "type"
        assert error.details["value"] == node_type
        best = error.details["candidates"][0]
        assert best["type"] == expected
        assert 0.9 < best["confidence"] < 1.0

    def test_unprefixed_unknown_type_gets_prefixed_suggestion(self, validator):
        report = validator.validate(_workflow([_node("Hook", "webhok")]))
        (error,) = [e for e in _errors(report) if "Unknown node type" in e.message]
        assert "nodes-base.webhook" in error.suggestion

    def test_unknown_type_without_close_match(self, validator):
        report = validator.validate(_workflow([_node("Thing", "zz.qqqqqqqq")]))
        (error,) = [e for e in _errors(report) if "Unknown node type" in e.message]
        assert error.suggestion is None

    @pytest.mark.parametrize("node_type", ["n8n-nodes-base.webhook", "nodes-base.webhook"])
    def test_both_type_spellings_accepted(self, validator, node_type):
        report = validator.validate(_workflow([_node("Hook", node_type)]))
        assert _errors(report) == []


# ---------------------------------------------------------------------------
# Node settings
# ---------------------------------------------------------------------------


class TestNodeSettings:
    def _single(self, validator, **settings) -> ValidationReport:
        return validator.validate(_workflow([_node("Start", MANUAL, **settings)]))

    def test_invalid_on_error(self, validator):
        report = self._single(validator, onError="explode")
        assert 'Invalid onError value: "explode"' in _messages(_errors(report))

    @pytest.mark.parametrize("mode", ["stop", "stopWorkflow", "continueRegularOutput"])
    def test_valid_on_error_values(self, validator, mode):
        assert _errors(self._single(validator, onError=mode)) == []

    def test_continue_on_fail_must_be_boolean(self, validator):
        report = self._single(validator, continueOnFail="yes")
        assert "continueOnFail must be a boolean" in _messages(_errors(report))

    def test_continue_on_fail_deprecated(self, validator):
        report = self._single(validator, continueOnFail=True)
        assert report.valid
        assert "deprecated" in _messages(_warnings(report))

    def test_continue_on_fail_and_on_error_conflict(self, validator):
        report = self._single(validator, continueOnFail=False, onError="continueRegularOutput")
        assert 'Cannot use both "continueOnFail" and "onError"' in _messages(_errors(report))

    def test_retry_without_max_tries_warns(self, validator):
        report = self._single(validator, retryOnFail=True)
        assert "maxTries is not specified" in _messages(_warnings(report))

    @pytest.mark.parametrize("max_tries", [0, -1, "3"])
    def test_retry_with_bad_max_tries(self, validator, max_tries):
        report = self._single(validator, retryOnFail=True, maxTries=max_tries)
        assert "maxTries must be a positive number" in _messages(_errors(report))

    def test_retry_with_many_tries_warns(self, validator):
        report = self._single(validator, retryOnFail=True, maxTries=11)
        assert report.valid
        assert "maxTries is set to 11" in _messages(_warnings(report))

    def test_negative_wait_between_tries(self, validator):
        report = self._single(validator, retryOnFail=True, maxTries=3, waitBetweenTries=-5)
        assert "waitBetweenTries must be a non-negative number" in _messages(_errors(report))

    def test_excessive_wait_between_tries(self, validator):
        report = self._single(validator, retryOnFail=True, maxTries=3, waitBetweenTries=600_000)
        assert "seems excessive" in _messages(_warnings(report))

    def test_type_version_above_max(self, validator):
        report = self._single(validator, typeVersion=9)
        assert "exceeds the maximum supported version" in _messages(_errors(report))
        (error,) = _errors(report)
        assert error.details == {"field": "typeVersion", "value": 9, "maxVersion": 1}

    def test_type_version_below_one(self, validator):
        report = self._single(validator, typeVersion=0)
        assert "Invalid typeVersion" in _messages(_errors(report))

    def test_misplaced_node_level_properties(self, validator):
        report = self._single(validator, parameters={"onError": "continueRegularOutput", "maxTries": 3})
        (warning,) = [w for w in _warnings(report) if "inside" in w.message]
        assert warning.details == {"properties": ["onError", "maxTries"]}

    def test_disabled_nodes_skip_settings_checks(self, validator):
        nodes = [_node("Start", MANUAL), _node("Off", onError="explode", disabled=True)]
        report = validator.validate(_workflow(nodes))
        assert report.valid

    def test_connections_only_skips_settings(self, validator):
        workflow = _workflow([_node("Start", MANUAL, onError="explode")])
        assert not validator.validate(workflow).valid
        assert validator.validate_connections_only(workflow).valid


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------


class TestConnections:
    def test_connection_from_missing_node(self, validator):
        workflow = _workflow([_node("Start", MANUAL)], {"Ghost": _main(["Start"])})
        report = validator.validate(workflow)
        assert 'Connection from non-existent node: "Ghost"' in _messages(_errors(report))
        assert report.statistics.invalid_connections == 1

    def test_connection_to_missing_node(self, validator):
        workflow = _workflow([_node("Start", MANUAL)], {"Start": _main(["Ghost"])})
        report = validator.validate(workflow)
        assert 'Connection to non-existent node: "Ghost" from "Start"' in _messages(_errors(report))

    def test_connection_by_id_gets_hint(self, validator):
        nodes = [_node("Start", MANUAL), _node("Next")]
        workflow = _workflow(nodes, {"Start": _main(["id-next"])})
        message = _messages(_errors(validator.validate(workflow)))
        assert "node ID 'id-next' instead of node name 'Next'" in message

    def test_source_by_id_gets_hint(self, validator):
        nodes = [_node("Start", MANUAL), _node("Next")]
        workflow = _workflow(nodes, {"id-start": _main(["Next"])})
        assert "instead of node name 'Start'" in _messages(_errors(validator.validate(workflow)))

    def test_negative_target_index(self, validator):
        nodes = [_node("Start", MANUAL), _node("Next")]
        workflow = _workflow(nodes, {"Start": {"main": [[{"node": "Next", "type": "main", "index": -1}]]}})
        report = validator.validate(workflow)
        assert 'Invalid connection index -1 from "Start" to "Next"' in _messages(_errors(report))

    @pytest.mark.parametrize(
        "outputs, match",
        [
            ("main", "must be an object"),
            ({"main": "Next"}, "must be an array of branches"),
            ({"main": ["Next"]}, "must be an array"),
            ({"main": [["Next"]]}, "Invalid connection entry"),
        ],
    )
    def test_malformed_connection_values(self, validator, outputs, match):
        workflow = _workflow([_node("Start", MANUAL), _node("Next")], {"Start": outputs})
        assert match in _messages(_errors(validator.validate(workflow)))

    def test_null_branch_is_skipped(self, validator):
        nodes = [_node("If", "n8n-nodes-base.if"), _node("No"), _node("Start", MANUAL)]
        connections = {
            "Start": _main(["If"]),
            "If": {"main": [None, [{"node": "No", "type": "main", "index": 0}]]},
        }
        report = validator.validate(_workflow(nodes, connections))
        assert report.valid
        assert report.statistics.valid_connections == 2

    def test_branch_beyond_declared_outputs(self, validator):
        nodes = [_node("Start", MANUAL), _node("A"), _node("B")]
        connections = {"Start": {"main": [[], [], [{"node": "A", "type": "main", "index": 0}]]}}
        report = validator.validate(_workflow(nodes, connections))
        assert 'Output index 2 of "Start" exceeds its declared outputs (1)' in _messages(_errors(report))

    def test_error_slot_past_declared_outputs_is_allowed(self, validator):
        nodes = [_node("Start", MANUAL), _node("If", "n8n-nodes-base.if", onError="continueErrorOutput")]
        nodes += [_node("Yes"), _node("No"), _node("Handle Error")]
        connections = {"Start": _main(["If"]), "If": _main(["Yes"], ["No"], ["Handle Error"])}
        report = validator.validate(_workflow(nodes, connections))
        assert _errors(report) == []

    def test_disabled_target_warns_and_is_not_counted(self, validator):
        nodes = [_node("Start", MANUAL), _node("Off", disabled=True)]
        report = validator.validate(_workflow(nodes, {"Start": _main(["Off"])}))
        assert 'Connection to disabled node: "Off" from "Start"' in _messages(_warnings(report))
        assert report.statistics.total_connections == 1
        assert report.statistics.valid_connections == 0
        assert report.statistics.invalid_connections == 0

    def test_ai_tool_target_must_be_tool_capable(self, validator):
        nodes = [_node("Chat", "@n8n/n8n-nodes-langchain.chatTrigger"), _node("Agent", "@n8n/n8n-nodes-langchain.agent")]
        nodes += [_node("Code Tool", "@n8n/n8n-nodes-langchain.toolCode"), _node("Note")]
        connections = {
            "Chat": _main(["Agent"]),
            "Agent": {"ai_tool": [[{"node": "Code Tool", "type": "ai_tool", "index": 0}, {"node": "Note", "type": "ai_tool", "index": 0}]]},
        }
        report = validator.validate(_workflow(nodes, connections))
        messages = _messages(_errors(report))
        assert 'Node "Note" cannot be used as an AI tool' in messages
        assert [e.node_name for e in _errors(report)] == ["Note"]


# ---------------------------------------------------------------------------
# Triggers and orphans
# ---------------------------------------------------------------------------


class TestTriggersAndOrphans:
    def test_no_trigger_warning(self, validator):
        report = validator.validate(_workflow([_node("A"), _node("B")], {"A": _main(["B"])}))
        assert "Workflow has no trigger nodes. It can only be executed manually." in _messages(_warnings(report))

    def test_no_trigger_warning_ignores_disabled_nodes(self, validator):
        report = validator.validate(_workflow([_node("A", disabled=True)]))
        assert "no trigger nodes" not in _messages(_warnings(report))

    def test_orphaned_node(self, validator):
        report = validator.validate(_workflow([_node("Start", MANUAL), _node("Alone")]))
        (warning,) = _warnings(report)
        assert warning.message == "Orphaned node: Alone not connected to any other nodes"
        assert warning.node_name == "Alone"

    def test_self_loop_only_counts_as_orphan(self, validator):
        nodes = [_node("Start", MANUAL), _node("Spin")]
        report = validator.validate(_workflow(nodes, {"Spin": _main(["Spin"])}))
        assert "Orphaned node: Spin" in _messages(_warnings(report))

    def test_unreachable_node(self, validator):
        nodes = [_node("Start", MANUAL), _node("A"), _node("B")]
        report = validator.validate(_workflow(nodes, {"A": _main(["B"])}))
        messages = _messages(_warnings(report))
        assert 'Node "A" is not reachable from any trigger node' in messages
        assert 'Node "B" is not reachable from any trigger node' in messages

    def test_sub_node_of_reachable_node_is_reachable(self, validator):
        nodes = [
            _node("Chat", "@n8n/n8n-nodes-langchain.chatTrigger"),
            _node("Agent", "@n8n/n8n-nodes-langchain.agent"),
            _node("Model", "@n8n/n8n-nodes-langchain.lmChatOpenAi"),
            _node("Tool", "@n8n/n8n-nodes-langchain.toolCode"),
        ]
        connections = {
            "Chat": _main(["Agent"]),
            "Model": {"ai_languageModel": [[{"node": "Agent", "type": "ai_languageModel", "index": 0}]]},
            "Agent": {"ai_tool": [[{"node": "Tool", "type": "ai_tool", "index": 0}]]},
        }
        report = validator.validate(_workflow(nodes, connections))
        assert _warnings(report) == []
        assert report.valid


# ---------------------------------------------------------------------------
# Error outputs
# ---------------------------------------------------------------------------


class TestErrorOutputs:
    def test_continue_error_output_without_connections(self, validator):
        nodes = [_node("Start", MANUAL), _node("Call", HTTP, onError="continueErrorOutput"), _node("Next")]
        connections = {"Start": _main(["Call"]), "Call": _main(["Next"])}
        report = validator.validate(_workflow(nodes, connections))
        assert "has onError: 'continueErrorOutput' but no error output connections in main[1]" in _messages(
            _errors(report)
        )
        (error,) = [e for e in _errors(report) if "continueErrorOutput" in e.message]
        assert error.details == {"field": "onError", "value": "continueErrorOutput", "errorOutput": 1}

    def test_error_branch_without_mode_warns(self, validator):
        nodes = [_node("Start", MANUAL), _node("Call", HTTP), _node("Next"), _node("Handle Error")]
        connections = {"Start": _main(["Call"]), "Call": _main(["Next"], ["Handle Error"])}
        report = validator.validate(_workflow(nodes, connections))
        assert report.valid
        assert "error output connections in main[1] but missing onError" in _messages(_warnings(report))
        (warning,) = [w for w in _warnings(report) if "missing onError" in w.message]
        assert warning.details == {"field": "onError", "value": None, "errorOutput": 1}

    def test_correct_error_output_is_clean(self, validator):
        nodes = [_node("Start", MANUAL), _node("Call", HTTP, onError="continueErrorOutput")]
        nodes += [_node("Next"), _node("Handle Error")]
        connections = {"Start": _main(["Call"]), "Call": _main(["Next"], ["Handle Error"])}
        report = validator.validate(_workflow(nodes, connections))
        assert report.valid
        assert _warnings(report) == []

    def test_error_handler_mixed_into_success_output(self, validator):
        nodes = [_node("Start", MANUAL), _node("Call", HTTP), _node("Save"), _node("Error Handler")]
        connections = {"Start": _main(["Call"]), "Call": _main(["Save", "Error Handler"])}
        report = validator.validate(_workflow(nodes, connections))
        (error,) = _errors(report)
        assert error.message.startswith("Incorrect error output configuration")
        assert "INCORRECT (current):" in error.message
        assert "CORRECT (should be):" in error.message
        assert "main[1] = error output" in error.message
        assert error.details == {"errorHandlers": ["Error Handler"]}

    def test_only_handlers_in_success_output_is_not_flagged(self, validator):
        nodes = [_node("Start", MANUAL), _node("Call", HTTP), _node("Catch A"), _node("Catch B")]
        connections = {"Start": _main(["Call"]), "Call": _main(["Catch A", "Catch B"])}
        assert validator.validate(_workflow(nodes, connections)).valid

    def test_custom_error_handler_classifier(self, provider):
        validator = StructuralValidator(provider, error_handler_classifier=lambda name, _type: name == "Cleanup")
        nodes = [_node("Start", MANUAL), _node("Call", HTTP), _node("Save"), _node("Cleanup")]
        connections = {"Start": _main(["Call"]), "Call": _main(["Save", "Cleanup"])}
        report = validator.validate(_workflow(nodes, connections))
        assert '"Cleanup" appear to be error handlers' in _messages(_errors(report))


# ---------------------------------------------------------------------------
# Self references and cycles
# ---------------------------------------------------------------------------


class TestCyclesAndSelfReferences:
    def test_self_reference_warns_once(self, validator):
        nodes = [_node("Start", MANUAL), _node("Retry")]
        connections = {"Start": _main(["Retry"]), "Retry": _main(["Retry", "Retry"])}
        report = validator.validate(_workflow(nodes, connections))
        matching = [w for w in _warnings(report) if "self-referencing" in w.message]
        assert [w.message for w in matching] == ['Node "Retry" has a self-referencing connection on main[0]']
        assert report.valid

    def test_cycle_is_error(self, validator):
        nodes = [_node("Start", MANUAL), _node("A"), _node("B"), _node("C")]
        connections = {"Start": _main(["A"]), "A": _main(["B"]), "B": _main(["C"]), "C": _main(["A"])}
        report = validator.validate(_workflow(nodes, connections))
        (error,) = [e for e in _errors(report) if "cycle" in e.message]
        assert error.message.startswith("Workflow contains a cycle: A -> B -> C -> A")
        assert error.details == {"cycle": ["A", "B", "C"]}

    def test_cycle_over_error_category(self, validator):
        nodes = [_node("Start", MANUAL), _node("A"), _node("B")]
        connections = {
            "Start": _main(["A"]),
            "A": _main(["B"]),
            "B": {"error": [[{"node": "A", "type": "main", "index": 0}]]},
        }
        assert "Workflow contains a cycle" in _messages(_errors(validator.validate(_workflow(nodes, connections))))

    def test_acyclic_diamond(self, validator):
        nodes = [_node("Start", MANUAL), _node("A"), _node("B"), _node("Join", "n8n-nodes-base.merge")]
        connections = {"Start": _main(["A", "B"]), "A": _main(["Join"]), "B": _main(["Join"])}
        assert validator.validate(_workflow(nodes, connections)).valid


# ---------------------------------------------------------------------------
# Resources and operations
# ---------------------------------------------------------------------------


class TestResourcesAndOperations:
    def _with_params(self, validator, node_type, **params) -> ValidationReport:
        nodes = [_node("Start", MANUAL), _node("Target", node_type, parameters=params)]
        return validator.validate(_workflow(nodes, {"Start": _main(["Target"])}))

    def test_plural_resource_gets_suggestion(self, validator):
        report = self._with_params(validator, "n8n-nodes-base.googleDrive", resource="files", operation="upload")
        (error,) = _errors(report)
        assert error.message == 'Invalid resource "files" for node type "n8n-nodes-base.googleDrive"'
        assert error.suggestion == "file"
        assert error.confidence >= 0.7
        assert "file" in error.details["validValues"]

    def test_operation_checked_against_valid_resource(self, validator):
        report = self._with_params(validator, "n8n-nodes-base.slack", resource="message", operation="sendMessage")
        (error,) = _errors(report)
        assert error.message == 'Invalid operation "sendMessage" for node type "n8n-nodes-base.slack"'
        assert error.suggestion == "send"

    def test_resource_differing_only_in_case(self, validator):
        report = self._with_params(validator, "n8n-nodes-base.slack", resource="Message", operation="send")
        (error,) = _errors(report)
        assert error.message == 'Invalid resource "Message" for node type "n8n-nodes-base.slack"'
        assert error.suggestion == "message"
        assert error.confidence == pytest.approx(0.95)
        assert error.details["reason"] == 'Use "message" (values are case-sensitive)'
        assert error.details["field"] == "parameters.resource"
        assert error.details["value"] == "Message"

    def test_operation_differing_only_in_case(self, validator):
        report = self._with_params(validator, "n8n-nodes-base.slack", resource="message", operation="SEND")
        (error,) = _errors(report)
        assert error.suggestion == "send"
        assert error.details["field"] == "parameters.operation"

    def test_low_confidence_suggestion_is_dropped(self, validator):
        report = self._with_params(validator, "n8n-nodes-base.slack", resource="qqqqqqqq")
        (error,) = _errors(report)
        assert error.suggestion is None
        assert error.confidence is None

    def test_threshold_is_configurable(self, provider):
        strict = StructuralValidator(provider, suggestion_threshold=0.99)
        nodes = [_node("Start", MANUAL), _node("Target", "n8n-nodes-base.slack", parameters={"resource": "messages"})]
        report = strict.validate(_workflow(nodes, {"Start": _main(["Target"])}))
        (error,) = _errors(report)
        assert error.suggestion is None

    def test_expressions_are_not_checked(self, validator):
        report = self._with_params(validator, "n8n-nodes-base.slack", resource="={{ $json.kind }}", operation="={{ 1 }}")
        assert report.valid

    def test_valid_values_pass(self, validator):
        report = self._with_params(validator, "n8n-nodes-base.postgres", resource="database", operation="select")
        assert report.valid

    def test_types_without_vocabulary_accept_anything(self, validator):
        assert self._with_params(validator, "n8n-nodes-base.set", operation="whatever").valid

    def test_failing_suggestion_service_leaves_finding_without_suggestion(self, provider, caplog):
        class Broken(StaticCapabilityProvider):
            calls = 0

            def get_capability(self, node_type):
                descriptor = super().get_capability(node_type)
                if descriptor is not None and descriptor.known_resources:
                    Broken.calls += 1
                    # the validator's own lookup succeeds, the suggestion service's lookups fail
                    if Broken.calls > 1:
                        raise RuntimeError("catalog went away")
                return descriptor

        broken = Broken([provider.get_capability(t) for t in provider.node_types()])
        validator = StructuralValidator(broken)
        nodes = [_node("Start", MANUAL), _node("Target", "n8n-nodes-base.slack", parameters={"resource": "messages"})]
        with caplog.at_level("DEBUG"):
            report = validator.validate(_workflow(nodes, {"Start": _main(["Target"])}))
        (error,) = _errors(report)
        assert error.suggestion is None
        assert "Similarity lookup failed" in caplog.text


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class TestReport:
    def _messy(self) -> Dict[str, Any]:
        nodes = [_node("Start", MANUAL), _node("A"), _node("A"), _node("Lonely"), _node("Slack", "n8n-nodes-base.slack", parameters={"resource": "messages"})]
        connections = {"Start": _main(["A", "Ghost"]), "Start2": _main(["A"]), "A": _main(["Slack"])}
        return _workflow(nodes, connections)

    def test_validation_is_deterministic(self, validator):
        workflow = self._messy()
        assert validator.validate(workflow) == validator.validate(workflow)
        assert validator.validate(workflow).to_dict() == validator.validate(workflow).to_dict()

    def test_validation_does_not_mutate_input(self, validator):
        workflow = self._messy()
        before = copy.deepcopy(workflow)
        validator.validate(workflow)
        assert workflow == before

    def test_report_is_frozen(self, validator):
        report = validator.validate(self._messy())
        with pytest.raises(AttributeError):
            report.valid = True

    def test_to_dict_uses_camel_case(self, validator):
        data = validator.validate(self._messy()).to_dict()
        assert set(data) == {"valid", "errors", "warnings", "statistics"}
        assert set(data["statistics"]) == {
            "totalNodes",
            "enabledNodes",
            "triggerNodes",
            "totalConnections",
            "validConnections",
            "invalidConnections",
        }
        assert all("nodeName" in e or "Connection from" in e["message"] for e in data["errors"])

    def test_finding_str(self):
        finding = Finding(Severity.ERROR, "Invalid resource", node_name="Slack", suggestion="message")
        assert str(finding) == "error: Invalid resource (in Slack). Did you mean 'message'?"

    def test_module_level_validate(self, provider):
        report = validate(_workflow([_node("Start", MANUAL)]), provider)
        assert report.valid and report.findings == ()


# ---------------------------------------------------------------------------
# Injected providers
# ---------------------------------------------------------------------------


def test_custom_provider_drives_outputs():
    provider = StaticCapabilityProvider(
        [
            CapabilityDescriptor("acme.start", trigger=True),
            CapabilityDescriptor("acme.router", outputs=(OutputSlot("left", 0), OutputSlot("middle", 1), OutputSlot("right", 2))),
            CapabilityDescriptor("acme.step"),
        ]
    )
    validator = StructuralValidator(provider)
    nodes = [_node("Start", "acme.start"), _node("Router", "acme.router"), _node("L", "acme.step"), _node("R", "acme.step")]
    connections = {"Start": _main(["Router"]), "Router": _main(["L"], [], ["R"])}
    report = validator.validate(_workflow(nodes, connections))
    assert report.valid
    assert report.statistics.trigger_nodes == 1
    assert report.statistics.valid_connections == 3


# ---------------------------------------------------------------------------
# Concrete scenario: Webhook and HTTP Request
# ---------------------------------------------------------------------------


def test_webhook_http_request_scenario(validator, engine):
    workflow = _workflow([_node("Webhook", WEBHOOK), _node("HTTP Request", HTTP)])

    report = validator.validate(workflow)
    assert report.valid
    (warning,) = report.findings
    assert warning.severity == Severity.WARNING
    assert "HTTP Request not connected to any other nodes" in warning.message

    result = engine.apply_diff(workflow, [{"type": "addConnection", "source": "Webhook", "target": "HTTP Request"}])
    assert result.success
    after = validator.validate(result.workflow)
    assert after.valid
    assert _warnings(after) == []
    assert after.statistics.valid_connections == 1
