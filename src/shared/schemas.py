"""JSON Schema contracts for events published to triage subscribers."""

import jsonschema
import structlog

logger = structlog.get_logger()

_KB_HIT = {
    "type": "object",
    "required": ["doc_id", "title", "anchor", "extract"],
    "properties": {
        "doc_id": {"type": "string"},
        "title": {"type": "string"},
        "anchor": {"type": "string"},
        "extract": {"type": "string"},
    },
}

_DECISION = {
    "type": "object",
    "required": ["action", "reason", "citations"],
    "properties": {
        "action": {"enum": ["FREEZE_CARD", "OPEN_DISPUTE", "NONE"]},
        "reason": {"type": "string"},
        "reason_code": {"type": ["string", "null"]},
        "citations": {"type": "array", "items": _KB_HIT},
        "related_transactions": {"type": ["array", "null"]},
    },
}

EVENT_SCHEMAS: dict[str, dict] = {
    "plan_built": {
        "type": "object",
        "required": ["message"],
        "properties": {"message": {"type": "string"}},
    },
    "tool_update": {
        "type": "object",
        "required": ["step", "ok", "duration_ms", "detail"],
        "properties": {
            "step": {"type": "string"},
            "ok": {"type": "boolean"},
            "duration_ms": {"type": "integer", "minimum": 0},
            "detail": {"type": ["object", "null"]},
        },
    },
    "decision_finalized": {
        "type": "object",
        "oneOf": [
            {
                "required": ["decision", "risk"],
                "properties": {
                    "decision": _DECISION,
                    "risk": {"enum": ["LOW", "MEDIUM", "HIGH"]},
                },
            },
            {
                "required": ["error", "reason"],
                "properties": {
                    "error": {"type": "string"},
                    "reason": {"type": "string"},
                },
            },
        ],
    },
}


def validate_event(event: str, payload: dict) -> bool:
    """Validate an event payload against its contract. Returns True if valid."""
    schema = EVENT_SCHEMAS.get(event)
    if schema is None:
        raise ValueError(f"Unknown event type: {event}")

    jsonschema.validate(instance=payload, schema=schema)
    return True
