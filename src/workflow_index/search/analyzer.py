"""Document analyzer: raw workflow bytes to an indexable metadata record.

Everything here is deterministic and side-effect free. The same bytes and
filename always produce the same record, including a byte-identical
description, so the pipeline can rely on digests for change detection.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
import hashlib
import json
from pathlib import PurePath
import re
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from workflow_index.domain.model import (
    TriggerType,
    WorkflowDocument,
    WorkflowRecord,
    complexity_for,
)
from workflow_index.domain.search import WorkflowAnalysis
from workflow_index.errors import ParseError


@dataclass(frozen=True)
class TriggerRule:
    """Maps node type substrings to a trigger classification."""

    label: TriggerType
    needles: tuple[str, ...]

    def matches(self, node_type: str) -> bool:
        lowered = node_type.lower()
        return any(needle in lowered for needle in self.needles)


# Priority order matters: the first rule matched by any node wins.
TRIGGER_RULES: tuple[TriggerRule, ...] = (
    TriggerRule("Webhook", ("webhook",)),
    TriggerRule("Scheduled", ("cron", "schedule")),
    TriggerRule("Triggered", ("trigger",)),
)

_MANUAL_TRIGGER_KINDS = frozenset({"manualtrigger", "start"})

# Control-flow and trigger plumbing, never reported as integrations.
STRUCTURAL_NODE_KINDS = frozenset(
    {
        "start",
        "noop",
        "code",
        "function",
        "functionitem",
        "set",
        "if",
        "merge",
        "switch",
        "webhook",
        "cron",
        "schedule",
        "manual",
        "stickynote",
    }
)

NAME_ACRONYMS = {
    "http": "HTTP",
    "api": "API",
    "webhook": "Webhook",
    "automation": "Automation",
    "automate": "Automate",
    "scheduled": "Scheduled",
    "triggered": "Triggered",
    "manual": "Manual",
}

GENERIC_NAME_PREFIXES = ("My workflow",)
DESCRIPTION_INTEGRATION_LIMIT = 3

_NAME_SEPARATORS = re.compile(r"[_\-\s]+")
_TRIGGER_SUFFIX = "Trigger"


def node_kind(node_type: str) -> str:
    """Strip the vendor/namespace prefix: ``n8n-nodes-base.slack`` -> ``slack``."""
    return node_type.rsplit(".", 1)[-1].strip()


def classify_trigger(node_types: Sequence[str] | None) -> TriggerType:
    """Classify how a workflow starts from its node types.

    ``None`` means the document declared no nodes at all.
    """
    if node_types is None:
        return "Unknown"
    candidates = [node_type for node_type in node_types if node_kind(node_type).lower() not in _MANUAL_TRIGGER_KINDS]
    for rule in TRIGGER_RULES:
        if any(rule.matches(node_type) for node_type in candidates):
            return rule.label
    return "Manual"


def integration_for(node_type: str) -> str | None:
    """Return the external service implied by a node type, or None for structural nodes."""
    kind = node_kind(node_type)
    if kind.endswith(_TRIGGER_SUFFIX) and len(kind) > len(_TRIGGER_SUFFIX):
        kind = kind[: -len(_TRIGGER_SUFFIX)]
    if not kind or kind.lower() in STRUCTURAL_NODE_KINDS:
        return None
    return kind[:1].upper() + kind[1:]


def extract_integrations(node_types: Iterable[str]) -> list[str]:
    integrations = {name for name in (integration_for(node_type) for node_type in node_types) if name}
    return sorted(integrations)


def name_from_filename(filename: str) -> str:
    """Derive a display name: ``2051_telegram_http_api.json`` -> ``Telegram HTTP API``."""
    stem = PurePath(filename).stem
    tokens = [token for token in _NAME_SEPARATORS.split(stem) if token]
    if tokens and tokens[0].isdigit():
        tokens = tokens[1:]
    if not tokens:
        return stem or filename
    return " ".join(NAME_ACRONYMS.get(token.lower(), token[:1].upper() + token[1:]) for token in tokens)


def display_name(declared: str | None, filename: str) -> str:
    name = (declared or "").strip()
    if not name or name == PurePath(filename).stem or name.startswith(GENERIC_NAME_PREFIXES):
        return name_from_filename(filename)
    return name


def describe(trigger_type: str, integrations: Sequence[str], node_count: int, complexity: str) -> str:
    """Synthesize the fixed-template description."""
    parts = [f"{trigger_type} workflow"]
    if integrations:
        listed = list(integrations[:DESCRIPTION_INTEGRATION_LIMIT])
        if len(integrations) > DESCRIPTION_INTEGRATION_LIMIT:
            listed.append(f"+{len(integrations) - DESCRIPTION_INTEGRATION_LIMIT} more")
        parts.append(f"integrating {', '.join(listed)}")
    parts.append(f"with {node_count} nodes ({complexity} complexity)")
    return " ".join(parts)


def content_digest(raw: bytes) -> str:
    """128-bit digest used only to detect changed files."""
    return hashlib.md5(raw, usedforsecurity=False).hexdigest()


def parse_document(raw: bytes | str, filename: str) -> WorkflowDocument:
    """Decode and validate a corpus document, raising ``ParseError`` on malformed input."""
    try:
        text = raw.decode("utf-8-sig") if isinstance(raw, bytes) else raw
        payload = json.loads(text)
    except UnicodeDecodeError as exc:
        raise ParseError(filename, f"not valid UTF-8: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise ParseError(filename, f"invalid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise ParseError(filename, f"expected a JSON object, got {type(payload).__name__}")

    try:
        return WorkflowDocument.model_validate(payload)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        raise ParseError(filename, f"{location}: {first.get('msg', 'invalid value')}") from exc


def _passthrough_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def analyze_document(raw: bytes, filename: str) -> WorkflowRecord:
    """Analyze raw document bytes into a record candidate (``analyzed_at`` left unset)."""
    document = parse_document(raw, filename)
    node_types = [node.type_name for node in document.node_list]
    node_count = len(node_types)
    complexity = complexity_for(node_count)
    trigger_type = classify_trigger(node_types if document.nodes is not None else None)
    integrations = extract_integrations(node_types)

    return WorkflowRecord(
        filename=filename,
        name=display_name(_passthrough_text(document.name), filename),
        workflow_id=_passthrough_text(document.id),
        active=bool(document.active),
        description=describe(trigger_type, integrations, node_count, complexity),
        trigger_type=trigger_type,
        complexity=complexity,
        node_count=node_count,
        integrations=integrations,
        tags=document.tag_names(),
        created_at=_passthrough_text(document.created_at),
        updated_at=_passthrough_text(document.updated_at),
        file_hash=content_digest(raw),
        file_size=len(raw),
    )


def inspect_document(raw: bytes | str) -> WorkflowAnalysis:
    """Analyze a payload that is not part of the corpus."""
    document = parse_document(raw, "<payload>")
    node_types = [node.type_name for node in document.node_list]
    node_count = len(node_types)

    issues: list[str] = []
    if not node_count:
        issues.append("No nodes found")
    if document.connections is None:
        issues.append("No connections defined")

    return WorkflowAnalysis(
        name=_passthrough_text(document.name).strip() or "Unnamed Workflow",
        active=bool(document.active),
        node_count=node_count,
        complexity=complexity_for(node_count),
        trigger_type=classify_trigger(node_types if document.nodes is not None else None),
        integrations=extract_integrations(node_types),
        node_types=dict(Counter(node_types)),
        connections=document.connection_count,
        has_credentials=any(bool(node.credentials) for node in document.node_list),
        validation_issues=issues,
    )
