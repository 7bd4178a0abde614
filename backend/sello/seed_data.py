import logging

from sqlalchemy import select

from sello.db.database import async_session
from sello.models.ai_template import AITemplate, TemplateKind

logger = logging.getLogger(__name__)

NAME_FIELD = {
    "id": "name",
    "type": "text",
    "label": "Assistant name",
    "placeholder": "e.g. Customer support assistant",
    "required": True,
    "validation": {"minLength": 3, "maxLength": 100, "errorMessage": "Name must be between 3 and 100 characters"},
}

SYSTEM_PROMPT_FIELD = {
    "id": "system_prompt",
    "type": "textarea",
    "label": "System prompt",
    "placeholder": "Define the assistant's role and behaviour. Example: You are a helpful support assistant...",
    "required": True,
    "rows": 6,
    "validation": {
        "minLength": 10,
        "maxLength": 5000,
        "errorMessage": "System prompt must be between 10 and 5000 characters",
    },
    "hint": "The system prompt defines how your AI assistant will behave and respond to users.",
}

TELEGRAM_FIELDS = [
    {
        "id": "telegram_token",
        "type": "password",
        "label": "Telegram bot token",
        "placeholder": "123456789:AAH...",
        "required": True,
        "hint": "Issued by @BotFather when you create the bot.",
    },
    {
        "id": "telegram_bot_username",
        "type": "text",
        "label": "Telegram bot username",
        "placeholder": "my_shop_bot",
        "required": True,
    },
]

_LANGUAGE_MODEL_NODE = {
    "parameters": {"model": "gpt-4o-mini", "options": {"temperature": 0.4}},
    "name": "OpenAI Chat Model",
    "type": "@n8n/n8n-nodes-langchain.lmChatOpenAi",
    "typeVersion": 1,
    "position": [460, 460],
}

_MEMORY_NODE = {
    "parameters": {"contextWindowLength": 10},
    "name": "Window Buffer Memory",
    "type": "@n8n/n8n-nodes-langchain.memoryBufferWindow",
    "typeVersion": 1.2,
    "position": [620, 460],
}

CHAT_ASSISTANT_TEMPLATE = {
    "nodes": [
        {
            "parameters": {"public": True, "mode": "webhook", "path": "", "options": {}},
            "name": "When chat message received",
            "type": "@n8n/n8n-nodes-langchain.chatTrigger",
            "typeVersion": 1.1,
            "position": [240, 300],
            "webhookId": "",
        },
        {
            "parameters": {"options": {"systemMessage": "{{systemPrompt}}"}},
            "name": "AI Agent",
            "type": "@n8n/n8n-nodes-langchain.agent",
            "typeVersion": 1.7,
            "position": [520, 300],
        },
        _LANGUAGE_MODEL_NODE,
        _MEMORY_NODE,
    ],
    "connections": {
        "When chat message received": {"main": [[{"node": "AI Agent", "type": "main", "index": 0}]]},
        "OpenAI Chat Model": {"ai_languageModel": [[{"node": "AI Agent", "type": "ai_languageModel", "index": 0}]]},
        "Window Buffer Memory": {"ai_memory": [[{"node": "AI Agent", "type": "ai_memory", "index": 0}]]},
    },
    "settings": {"executionOrder": "v1"},
}

TELEGRAM_BOT_TEMPLATE = {
    "nodes": [
        {
            "parameters": {"httpMethod": "POST", "path": "", "options": {}},
            "name": "Telegram Update",
            "type": "n8n-nodes-base.webhook",
            "typeVersion": 2,
            "position": [240, 300],
            "webhookId": "",
        },
        {
            "parameters": {
                "promptType": "define",
                "text": "={{ $json.body.message.text }}",
                "options": {"systemMessage": "{{systemPrompt}}"},
            },
            "name": "AI Agent",
            "type": "@n8n/n8n-nodes-langchain.agent",
            "typeVersion": 1.7,
            "position": [520, 300],
        },
        _LANGUAGE_MODEL_NODE,
        _MEMORY_NODE,
        {
            "parameters": {
                "chatId": "={{ $('Telegram Update').item.json.body.message.chat.id }}",
                "text": "={{ $json.output }}",
                "additionalFields": {"appendAttribution": False},
            },
            "name": "Send Reply",
            "type": "n8n-nodes-base.telegram",
            "typeVersion": 1.2,
            "position": [820, 300],
        },
        {
            "parameters": {
                "operation": "sendChatAction",
                "chatId": "={{ $json.body.message.chat.id }}",
            },
            "name": "Typing Indicator",
            "type": "n8n-nodes-base.telegram",
            "typeVersion": 1.2,
            "position": [520, 120],
        },
    ],
    "connections": {
        "Telegram Update": {
            "main": [
                [
                    {"node": "AI Agent", "type": "main", "index": 0},
                    {"node": "Typing Indicator", "type": "main", "index": 0},
                ]
            ]
        },
        "AI Agent": {"main": [[{"node": "Send Reply", "type": "main", "index": 0}]]},
        "OpenAI Chat Model": {"ai_languageModel": [[{"node": "AI Agent", "type": "ai_languageModel", "index": 0}]]},
        "Window Buffer Memory": {"ai_memory": [[{"node": "AI Agent", "type": "ai_memory", "index": 0}]]},
    },
    "settings": {"executionOrder": "v1"},
}

TEMPLATES = [
    {
        "name": "AI Chat Assistant",
        "kind": TemplateKind.CHAT.value,
        "template": CHAT_ASSISTANT_TEMPLATE,
        "form_config": {"fields": [NAME_FIELD, SYSTEM_PROMPT_FIELD]},
    },
    {
        "name": "Telegram AI Bot",
        "kind": TemplateKind.MESSAGING_BOT.value,
        "template": TELEGRAM_BOT_TEMPLATE,
        "form_config": {"fields": [NAME_FIELD, SYSTEM_PROMPT_FIELD, *TELEGRAM_FIELDS]},
    },
]


async def seed_templates():
    async with async_session() as db:
        result = await db.execute(select(AITemplate.name))
        existing = set(result.scalars().all())

        added = 0
        for t in TEMPLATES:
            if t["name"] in existing:
                continue
            db.add(AITemplate(**t))
            added += 1

        await db.commit()
        if added:
            logger.info(f"Seeded {added} AI templates")
