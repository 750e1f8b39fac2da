"""Agent Payloads - agent-id extraction and output-probe classification.

Tests:
    - parse_agent_id fallback chain: direct -> nested -> generic id -> escaped-key scan
    - Probe results classify PENDING / SUCCESS / FAILURE across JSON, envelopes and text
    - Ambiguous text stays PENDING
    - Result extraction prefers the agent's own entry; multi-agent payloads need attribution
"""

import json

from threadline.core.agent_payloads import (
    ProbeOutcome, agent_id_from_input, candidate_agent_ids,
    classify_probe_result, extract_probe_result, parse_agent_id,
)

from tests.raw_messages import text_envelope


# -- parse_agent_id ------------------------------------------------------------

def test_parse_direct_snake_case_field():
    assert parse_agent_id('{"agent_id": "A1"}').agent_id == "A1"


def test_parse_direct_camel_case_field():
    assert parse_agent_id('{"agentId": "A2", "status": "started"}').agent_id == "A2"


def test_parse_nested_data_field():
    assert parse_agent_id('{"data": {"agent_id": "A3"}}').agent_id == "A3"


def test_parse_generic_id_field():
    assert parse_agent_id('{"id": "A4"}').agent_id == "A4"


def test_parse_array_envelope():
    assert parse_agent_id(text_envelope({"agent_id": "A5"})).agent_id == "A5"


def test_parse_object_envelope():
    raw = json.dumps({"text": json.dumps({"agentId": "A6"})})
    assert parse_agent_id(raw).agent_id == "A6"


def test_parse_escaped_key_scan():
    raw = 'Launched: {\\"agent_id\\": \\"A7\\", \\"note\\": \\"x\\"}'
    assert parse_agent_id(raw).agent_id == "A7"


def test_parse_flexible_key_value_text():
    assert parse_agent_id("Task started. agentId: a-8_x").agent_id == "a-8_x"
    assert parse_agent_id("spawned agent_id=B9 ok").agent_id == "B9"


def test_parse_failure_carries_diagnostic():
    parsed = parse_agent_id("not json")
    assert not parsed.ok
    assert parsed.agent_id is None
    assert "not json" in parsed.diagnostic


def test_parse_failure_truncates_long_results():
    parsed = parse_agent_id("z" * 300)
    assert parsed.diagnostic.endswith("...")
    assert len(parsed.diagnostic) < 150


def test_parse_empty_result():
    assert parse_agent_id("   ").diagnostic == "empty spawn result"


def test_agent_id_from_probe_input():
    assert agent_id_from_input({"agentId": "A1"}) == "A1"
    assert agent_id_from_input({"agent_id": "A2"}) == "A2"
    assert agent_id_from_input({"task_id": "A3", "block": False}) == "A3"
    assert agent_id_from_input({"other": "x"}) is None


# -- classify_probe_result -----------------------------------------------------

def test_not_ready_status_is_pending():
    assert classify_probe_result('{"retrieval_status": "not_ready"}', False) is ProbeOutcome.PENDING
    assert classify_probe_result('{"status": "running"}', False) is ProbeOutcome.PENDING


def test_any_agent_still_running_is_pending():
    content = json.dumps({
        "retrieval_status": "success",
        "agents": {"A1": {"status": "completed"}, "A2": {"status": "running"}},
    })
    assert classify_probe_result(content, False, "A1") is ProbeOutcome.PENDING


def test_success_with_agents_map():
    content = '{"retrieval_status":"success","agents":{"A1":{"result":"ok"}}}'
    assert classify_probe_result(content, False, "A1") is ProbeOutcome.SUCCESS


def test_target_agent_failure_in_map():
    content = json.dumps({"agents": {"A1": {"status": "failed", "result": "crash"}}})
    assert classify_probe_result(content, False, "A1") is ProbeOutcome.FAILURE


def test_error_status_is_failure():
    assert classify_probe_result('{"status": "error"}', False) is ProbeOutcome.FAILURE


def test_is_error_always_fails():
    assert classify_probe_result('{"status": "completed"}', True) is ProbeOutcome.FAILURE


def test_envelope_is_unwrapped_before_classifying():
    content = text_envelope({"retrieval_status": "not_ready"})
    assert classify_probe_result(content, False) is ProbeOutcome.PENDING


def test_text_status_tags():
    assert classify_probe_result("<retrieval_status>not_ready</retrieval_status>", False) is ProbeOutcome.PENDING
    assert classify_probe_result("retrieval_status: success\nAll done", False) is ProbeOutcome.SUCCESS
    assert classify_probe_result("Task is not ready yet", False) is ProbeOutcome.PENDING


def test_ambiguous_text_stays_pending():
    assert classify_probe_result("Here is some output", False) is ProbeOutcome.PENDING
    assert classify_probe_result("", False) is ProbeOutcome.PENDING
    assert classify_probe_result('{"note": "hi"}', False) is ProbeOutcome.PENDING


# -- extract_probe_result ------------------------------------------------------

def test_extract_target_agent_result():
    content = json.dumps({"agents": {"A0": {"result": "other"}, "A1": {"result": "mine"}}})
    assert extract_probe_result(content, "A1", allow_first_entry=False) == "mine"


def test_extract_entry_without_result_is_pretty_json():
    content = json.dumps({"agents": {"A1": {"status": "completed"}}})
    assert extract_probe_result(content, "A1", allow_first_entry=False) == (
        '{\n  "status": "completed"\n}'
    )


def test_extract_first_entry_only_when_allowed():
    content = json.dumps({"agents": {"X": {"result": "first"}}})
    assert extract_probe_result(content, "A1", allow_first_entry=True) == "first"
    assert extract_probe_result(content, "A1", allow_first_entry=False) is None


def test_extract_top_level_result_field():
    content = json.dumps({"status": "completed", "result": "summary"})
    assert extract_probe_result(content, "A1", allow_first_entry=False) == "summary"


def test_extract_plain_text_is_returned_unwrapped():
    content = json.dumps([{"type": "text", "text": "final words"}])
    assert extract_probe_result(content, "A1", allow_first_entry=False) == "final words"


# -- candidate_agent_ids -------------------------------------------------------

def test_candidates_from_agents_map_then_direct_fields():
    content = json.dumps({"agent_id": "B", "agents": {"A": {}, "C": {}}})
    assert candidate_agent_ids(content) == ["A", "C", "B"]


def test_candidates_from_envelope():
    assert candidate_agent_ids(text_envelope({"agents": {"A1": {}}})) == ["A1"]


def test_no_candidates_in_text():
    assert candidate_agent_ids("agent A1 is done") == []
