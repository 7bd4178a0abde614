"""Turns a stored n8n workflow template into a concrete workflow document.

Every function here is pure: it takes a JSON tree and returns a new one, the
stored template is never touched.
"""

import copy
import re
from typing import Any, Callable

JSONValue = str | int | float | bool | None | list[Any] | dict[str, Any]

CHAT_TRIGGER_NODE = "@n8n/n8n-nodes-langchain.chatTrigger"
WEBHOOK_NODE = "n8n-nodes-base.webhook"
TELEGRAM_NODE = "n8n-nodes-base.telegram"
TELEGRAM_TRIGGER_NODE = "n8n-nodes-base.telegramTrigger"

TRIGGER_NODE_TYPES = (CHAT_TRIGGER_NODE, WEBHOOK_NODE)
BOT_NODE_TYPES = (TELEGRAM_NODE, TELEGRAM_TRIGGER_NODE)

TELEGRAM_CREDENTIAL_TYPE = "telegramApi"

SYSTEM_PROMPT_PLACEHOLDER = "systemPrompt"
TELEGRAM_TOKEN_PLACEHOLDER = "telegramToken"
_PLACEHOLDER_RE = re.compile(r"\{\{(systemPrompt|telegramToken)\}\}")


def map_strings(tree: JSONValue, fn: Callable[[str], str]) -> JSONValue:
    """Rebuild ``tree`` with ``fn`` applied to every string leaf.

    Lists and dicts are walked recursively; numbers, booleans and None pass
    through unchanged. Dict keys are left alone.
    """
    if isinstance(tree, str):
        return fn(tree)
    if isinstance(tree, list):
        return [map_strings(item, fn) for item in tree]
    if isinstance(tree, dict):
        return {key: map_strings(value, fn) for key, value in tree.items()}
    return tree


def clone_template(template: dict) -> dict:
    return copy.deepcopy(template)


def find_trigger_node(nodes: list[dict] | None) -> dict | None:
    for node in nodes or []:
        if isinstance(node, dict) and node.get("type") in TRIGGER_NODE_TYPES:
            return node
    return None


def bind_trigger(document: dict, webhook_id: str, webhook_path: str) -> dict:
    """Point the workflow's trigger node at a fresh webhook id and path."""
    result = clone_template(document)
    trigger = find_trigger_node(result.get("nodes"))
    if trigger is not None:
        trigger["webhookId"] = webhook_id
        trigger.setdefault("parameters", {})["path"] = webhook_path
    return result


def bind_bot_credential(document: dict, credential_id: str, credential_name: str) -> dict:
    """Attach the Telegram credential to every Telegram node, not just the first."""
    result = clone_template(document)
    for node in result.get("nodes") or []:
        if isinstance(node, dict) and node.get("type") in BOT_NODE_TYPES:
            credentials = node.setdefault("credentials", {})
            credentials[TELEGRAM_CREDENTIAL_TYPE] = {"id": credential_id, "name": credential_name}
    return result


def substitute_placeholders(document: JSONValue, system_prompt: str, bot_token: str | None = None) -> JSONValue:
    """Fill ``{{systemPrompt}}`` and ``{{telegramToken}}`` everywhere in the tree.

    Both placeholders are resolved in a single pass, so placeholder-looking
    text inside the prompt itself is not expanded again. A missing bot token
    resolves to an empty string.
    """
    values = {
        SYSTEM_PROMPT_PLACEHOLDER: system_prompt,
        TELEGRAM_TOKEN_PLACEHOLDER: bot_token or "",
    }

    def _fill(text: str) -> str:
        return _PLACEHOLDER_RE.sub(lambda match: values[match.group(1)], text)

    return map_strings(document, _fill)


def replace_literal(tree: JSONValue, old: str, new: str) -> JSONValue:
    """Swap an earlier prompt for a new one, matching ``old`` as plain text."""
    if not old:
        return copy.deepcopy(tree)
    return map_strings(tree, lambda text: text.replace(old, new))


def to_clean_submission(document: dict, name: str | None = None) -> dict:
    """Reduce a workflow document to the fields n8n accepts on create/update."""
    return {
        "name": name if name is not None else document.get("name", ""),
        "nodes": copy.deepcopy(document.get("nodes") or []),
        "connections": copy.deepcopy(document.get("connections") or {}),
        "settings": copy.deepcopy(document.get("settings") or {}),
    }
