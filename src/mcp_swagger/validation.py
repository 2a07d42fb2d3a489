"""
Tool descriptor validation rules shared by the transformer and the tool manager.
"""

import re
from typing import List, Sequence, Tuple

from .models import ToolDescriptor, ValidationIssue, ValidationResult

ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")


def check_tool(tool: ToolDescriptor, prefix: str = "") -> Tuple[List[ValidationIssue], List[ValidationIssue]]:
    """Check a single tool's shape.

    Args:
        tool: The tool to check
        prefix: Prefix for reported field names (``tools[3].``)

    Returns:
        Tuple of (errors, warnings)
    """
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    if not isinstance(tool.id, str) or not tool.id:
        errors.append(
            ValidationIssue(
                field=f"{prefix}id", message="Tool ID is required and must be a string", code="INVALID_ID"
            )
        )
    if not isinstance(tool.name, str) or not tool.name:
        errors.append(
            ValidationIssue(
                field=f"{prefix}name", message="Tool name is required and must be a string", code="INVALID_NAME"
            )
        )
    if not isinstance(tool.description, str) or not tool.description:
        errors.append(
            ValidationIssue(
                field=f"{prefix}description",
                message="Tool description is required and must be a string",
                code="INVALID_DESCRIPTION",
            )
        )
    if tool.handler is None or not callable(tool.handler):
        errors.append(
            ValidationIssue(
                field=f"{prefix}handler",
                message="Tool handler is required and must be a function",
                code="INVALID_HANDLER",
            )
        )

    if tool.id and not ID_PATTERN.match(tool.id):
        warnings.append(
            ValidationIssue(
                field=f"{prefix}id",
                message="Tool ID should only contain alphanumeric characters, underscores, and hyphens",
                code="ID_FORMAT",
            )
        )
    if tool.metadata is not None and tool.metadata.deprecated:
        warnings.append(
            ValidationIssue(
                field=f"{prefix}metadata.deprecated", message="Tool is marked as deprecated", code="DEPRECATED"
            )
        )

    return errors, warnings


def validate_tool(tool: ToolDescriptor) -> ValidationResult:
    errors, warnings = check_tool(tool)
    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)


def validate_tools(tools: Sequence[ToolDescriptor]) -> ValidationResult:
    """Validate a batch of tools, reporting duplicates.

    The first occurrence of an id or name is accepted; every later occurrence
    yields one ``DUPLICATE_ID`` or ``DUPLICATE_NAME`` error.
    """
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []
    seen_ids = set()
    seen_names = set()

    for index, tool in enumerate(tools):
        prefix = f"tools[{index}]."
        tool_errors, tool_warnings = check_tool(tool, prefix)
        errors.extend(tool_errors)
        warnings.extend(tool_warnings)

        if tool.id:
            if tool.id in seen_ids:
                errors.append(
                    ValidationIssue(field=f"{prefix}id", message=f"Duplicate tool ID: {tool.id}", code="DUPLICATE_ID")
                )
            seen_ids.add(tool.id)
        if tool.name:
            if tool.name in seen_names:
                errors.append(
                    ValidationIssue(
                        field=f"{prefix}name", message=f"Duplicate tool name: {tool.name}", code="DUPLICATE_NAME"
                    )
                )
            seen_names.add(tool.name)

    return ValidationResult(valid=not errors, errors=errors, warnings=warnings)
