"""
Tests for turning stored templates into n8n workflow documents
"""

import copy

import pytest

from sello.seed_data import CHAT_ASSISTANT_TEMPLATE, TELEGRAM_BOT_TEMPLATE
from sello.services.template_service import (
    TELEGRAM_CREDENTIAL_TYPE,
    TELEGRAM_NODE,
    bind_bot_credential,
    bind_trigger,
    find_trigger_node,
    map_strings,
    replace_literal,
    substitute_placeholders,
    to_clean_submission,
)


def _strings(tree):
    found = []
    map_strings(tree, lambda s: found.append(s) or s)
    return found


# ============ Placeholder substitution ============

def test_substitution_reaches_every_string_leaf():
    document = {
        "name": "{{systemPrompt}}",
        "nodes": [
            {"parameters": {"options": {"systemMessage": "Role: {{systemPrompt}}"}}},
            {"parameters": {"list": ["a", ["deep {{telegramToken}}"]]}},
        ],
        "settings": {"retries": 3, "enabled": True, "note": None, "ratio": 0.5},
    }

    result = substitute_placeholders(document, "Be kind", "123:abc")

    assert result["name"] == "Be kind"
    assert result["nodes"][0]["parameters"]["options"]["systemMessage"] == "Role: Be kind"
    assert result["nodes"][1]["parameters"]["list"] == ["a", ["deep 123:abc"]]
    assert result["settings"] == {"retries": 3, "enabled": True, "note": None, "ratio": 0.5}
    assert not any("{{" in s for s in _strings(result))


def test_missing_token_resolves_to_empty_string():
    result = substitute_placeholders({"t": "bot{{telegramToken}}/x"}, "prompt")
    assert result == {"t": "bot/x"}


def test_substitution_is_idempotent():
    once = substitute_placeholders(copy.deepcopy(TELEGRAM_BOT_TEMPLATE), "You help with bikes", "1:tok")
    twice = substitute_placeholders(once, "You help with bikes", "1:tok")
    assert once == twice


def test_placeholder_text_inside_the_prompt_is_not_expanded_again():
    result = substitute_placeholders({"m": "{{systemPrompt}}"}, "echo {{telegramToken}}", "1:secret")
    assert result == {"m": "echo {{telegramToken}}"}


def test_unknown_placeholders_are_left_alone():
    result = substitute_placeholders({"m": "={{ $json.output }} {{other}}"}, "p")
    assert result == {"m": "={{ $json.output }} {{other}}"}


def test_substitution_does_not_mutate_the_stored_template():
    original = copy.deepcopy(CHAT_ASSISTANT_TEMPLATE)
    substitute_placeholders(CHAT_ASSISTANT_TEMPLATE, "anything at all")
    assert CHAT_ASSISTANT_TEMPLATE == original


# ============ Trigger and credential binding ============

def test_bind_trigger_sets_webhook_id_and_path():
    result = bind_trigger(CHAT_ASSISTANT_TEMPLATE, "abc123", "service-s1-abc123")
    trigger = find_trigger_node(result["nodes"])

    assert trigger["webhookId"] == "abc123"
    assert trigger["parameters"]["path"] == "service-s1-abc123"
    assert find_trigger_node(CHAT_ASSISTANT_TEMPLATE["nodes"])["webhookId"] == ""


def test_bind_trigger_without_trigger_node_changes_nothing():
    document = {"nodes": [{"type": "n8n-nodes-base.set", "parameters": {}}]}
    assert bind_trigger(document, "id", "path") == document


def _telegram_nodes(count):
    return {"nodes": [{"name": f"Telegram {i}", "type": TELEGRAM_NODE, "parameters": {}} for i in range(count)]}


@pytest.mark.parametrize("count", [0, 1, 3])
def test_bind_bot_credential_binds_every_telegram_node(count):
    document = _telegram_nodes(count)
    document["nodes"].append({"name": "Agent", "type": "@n8n/n8n-nodes-langchain.agent"})

    result = bind_bot_credential(document, "cred-9", "shop_bot_s1_1700000000")

    bound = [n for n in result["nodes"] if "credentials" in n]
    assert len(bound) == count
    for node in bound:
        assert node["credentials"][TELEGRAM_CREDENTIAL_TYPE] == {"id": "cred-9", "name": "shop_bot_s1_1700000000"}
    assert all("credentials" not in n for n in document["nodes"])


def test_bind_bot_credential_keeps_other_credentials():
    document = {"nodes": [{"type": TELEGRAM_NODE, "credentials": {"httpHeaderAuth": {"id": "h1"}}}]}
    result = bind_bot_credential(document, "c1", "n1")
    assert result["nodes"][0]["credentials"] == {
        "httpHeaderAuth": {"id": "h1"},
        TELEGRAM_CREDENTIAL_TYPE: {"id": "c1", "name": "n1"},
    }


# ============ Literal replacement ============

def test_replace_literal_treats_old_text_as_plain_text():
    old = "Price: $5 (approx.) [USD] * 2?"
    tree = [{"systemMessage": f"Intro. {old}"}, {"other": "Price: $5 approx USD"}]

    result = replace_literal(tree, old, "New prompt")

    assert result == [{"systemMessage": "Intro. New prompt"}, {"other": "Price: $5 approx USD"}]


def test_replace_literal_replaces_every_occurrence():
    assert replace_literal({"a": "x-x-x"}, "x", "y") == {"a": "y-y-y"}


def test_replace_literal_with_empty_old_text_is_a_copy():
    tree = {"a": ["b"]}
    result = replace_literal(tree, "", "anything")
    assert result == tree
    assert result is not tree


# ============ Clean submission ============

def test_clean_submission_keeps_only_accepted_fields():
    remote = {
        "id": "wf-1",
        "name": "Old",
        "active": True,
        "nodes": [{"name": "A"}],
        "connections": {"A": {}},
        "settings": None,
        "staticData": {"x": 1},
        "tags": [],
        "versionId": "v1",
    }

    result = to_clean_submission(remote, "New")

    assert result == {"name": "New", "nodes": [{"name": "A"}], "connections": {"A": {}}, "settings": {}}


def test_clean_submission_defaults_to_document_name():
    assert to_clean_submission({"name": "Kept"})["name"] == "Kept"
