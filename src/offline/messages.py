"""Control channel message schemas."""

from __future__ import annotations

from typing import Any, Dict

from jsonschema import Draft7Validator

from .errors import ControlMessageError

SKIP_WAITING = "SKIP_WAITING"
GET_VERSION = "GET_VERSION"
CACHE_URLS = "CACHE_URLS"
CLEAR_CACHE = "CLEAR_CACHE"

ENVELOPE_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["type"],
    "properties": {
        "type": {"type": "string"},
        "payload": {"type": "object"},
    },
}

PAYLOAD_SCHEMAS: Dict[str, Dict[str, Any]] = {
    CACHE_URLS: {
        "type": "object",
        "required": ["urls"],
        "properties": {
            "urls": {"type": "array", "items": {"type": "string", "minLength": 1}},
        },
    },
    CLEAR_CACHE: {
        "type": "object",
        "required": ["cacheName"],
        "properties": {
            "cacheName": {"type": "string", "minLength": 1},
        },
    },
}

_envelope_validator = Draft7Validator(ENVELOPE_SCHEMA)
_payload_validators = {
    name: Draft7Validator(schema) for name, schema in PAYLOAD_SCHEMAS.items()
}


def _raise_on_errors(validator: Draft7Validator, payload: Any, what: str) -> None:
    errors = sorted(validator.iter_errors(payload), key=lambda e: [str(p) for p in e.path])
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ControlMessageError(f"{what} validation failed: {messages}")


def validate_message(message: Any) -> Dict[str, Any]:
    """Check the envelope and, for known types, the payload. Returns the message."""
    _raise_on_errors(_envelope_validator, message, "control message")
    validator = _payload_validators.get(message["type"])
    if validator is not None:
        _raise_on_errors(validator, message.get("payload"), f"{message['type']} payload")
    return message
