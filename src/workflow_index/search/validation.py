"""Structural validation of workflow payloads.

Validation never raises for bad input: problems are collected into a
``ValidationReport`` so callers can show all of them at once.
"""

from __future__ import annotations

import json
from typing import Any

from workflow_index.domain.search import ValidationInfo, ValidationReport


def _is_trigger_type(node_type: str) -> bool:
    lowered = node_type.lower()
    return "trigger" in lowered or "webhook" in lowered


def _valid_position(position: Any) -> bool:
    return (
        isinstance(position, list)
        and len(position) == 2
        and all(isinstance(value, (int, float)) and not isinstance(value, bool) for value in position)
    )


def _connection_targets(targets: Any) -> list[str]:
    """Flatten ``{"main": [[{"node": ...}, ...], ...]}`` into target node names."""
    if not isinstance(targets, dict):
        return []
    names: list[str] = []
    for outputs in targets.values():
        if not isinstance(outputs, list):
            continue
        for output in outputs:
            if not isinstance(output, list):
                continue
            for connection in output:
                if isinstance(connection, dict) and connection.get("node"):
                    names.append(str(connection["node"]))
    return names


def validate_document(raw: str | bytes) -> ValidationReport:
    """Check a workflow payload for correctness and report errors and warnings."""
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        return ValidationReport(valid=False, errors=[f"JSON parsing error: {exc}"])

    if not isinstance(payload, dict):
        return ValidationReport(valid=False, errors=["Workflow must be a JSON object"])

    errors: list[str] = []
    warnings: list[str] = []

    nodes = payload.get("nodes")
    if not isinstance(nodes, list):
        nodes = []
    connections = payload.get("connections")

    if not payload.get("name"):
        errors.append("Workflow must have a name")
    if not nodes:
        errors.append("Workflow must have at least one node")
    if connections is None:
        warnings.append("Workflow has no connections defined")

    has_trigger = False
    has_credentials = False
    node_names: set[str] = set()
    for index, node in enumerate(nodes):
        if not isinstance(node, dict):
            errors.append(f"Node at index {index} is not an object")
            continue
        name = node.get("name")
        if name is not None and not isinstance(name, str):
            name = str(name)
        node_type = node.get("type")
        if not name:
            errors.append(f"Node at index {index} has no name")
        if not node_type:
            errors.append(f'Node "{name or index}" has no type')
        if not _valid_position(node.get("position")):
            warnings.append(f'Node "{name or index}" has invalid position')
        if name:
            if name in node_names:
                errors.append(f'Duplicate node name: "{name}"')
            node_names.add(name)
        if isinstance(node_type, str) and _is_trigger_type(node_type):
            has_trigger = True
        if node.get("credentials"):
            has_credentials = True

    connection_map = connections if isinstance(connections, dict) else {}
    for source, targets in connection_map.items():
        if source not in node_names:
            errors.append(f'Connection from non-existent node: "{source}"')
        for target in _connection_targets(targets):
            if target not in node_names:
                errors.append(f'Connection to non-existent node: "{target}"')

    if not has_trigger:
        warnings.append("Workflow has no trigger node - will need manual execution")

    return ValidationReport(
        valid=not errors,
        errors=errors,
        warnings=warnings,
        info=ValidationInfo(
            nodes=len(nodes),
            connections=len(connection_map),
            has_trigger=has_trigger,
            has_credentials=has_credentials,
        ),
    )
