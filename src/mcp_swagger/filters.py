"""
Endpoint selection.

``EndpointFilter`` decides which operations become tools. The same predicate
backs both the transformer and any endpoint listing, so a table of endpoints
always matches what will actually be converted.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from pydantic import BaseModel, Field

from .models import (
    FilterOptions,
    NormalizedOperation,
    OperationFilter,
    ParameterRule,
    PatternRule,
    StatusCodeRule,
)

logger = logging.getLogger(__name__)

VALID_FILTER_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS", "TRACE"]


def matches_pattern(value: str, pattern: str) -> bool:
    """Check whether a value matches a ``*`` wildcard pattern.

    The match is anchored at both ends and case-insensitive.
    """
    regex = re.escape(pattern).replace(r"\*", ".*")
    return re.fullmatch(regex, value, flags=re.IGNORECASE) is not None


def _matches_any(value: str, patterns: Iterable[str]) -> bool:
    return any(matches_pattern(value, pattern) for pattern in patterns)


class EndpointFilter:
    """Pure inclusion predicate over normalized operations."""

    @staticmethod
    def should_include(operation: NormalizedOperation, options: Optional[FilterOptions] = None) -> bool:
        """Check whether an operation should become a tool.

        Args:
            operation: The operation to check
            options: Deprecation, tag and operation filter rules

        Returns:
            True if every rule passes
        """
        options = options or FilterOptions()

        if operation.deprecated and not options.include_deprecated:
            return False

        if options.include_tags:
            if not any(tag in options.include_tags for tag in operation.tags):
                return False
        if options.exclude_tags:
            if any(tag in options.exclude_tags for tag in operation.tags):
                return False

        if options.operation_filter is not None:
            return EndpointFilter.apply_operation_filter(
                operation, operation.method.value, operation.path, options.operation_filter
            )

        return True

    @staticmethod
    def apply_operation_filter(
        operation: NormalizedOperation, method: str, path: str, operation_filter: OperationFilter
    ) -> bool:
        """Evaluate the clauses of an operation filter in their fixed order."""
        methods = operation_filter.methods
        if methods is not None:
            method_upper = method.upper()
            if methods.include and method_upper not in [m.upper() for m in methods.include]:
                return False
            if methods.exclude and method_upper in [m.upper() for m in methods.exclude]:
                return False

        paths = operation_filter.paths
        if paths is not None:
            if paths.include and not _matches_any(path, paths.include):
                return False
            if paths.exclude and _matches_any(path, paths.exclude):
                return False

        operation_ids = operation_filter.operation_ids
        if operation_ids is not None and operation.operation_id:
            if operation_ids.include and not _matches_any(operation.operation_id, operation_ids.include):
                return False
            if operation_ids.exclude and _matches_any(operation.operation_id, operation_ids.exclude):
                return False

        status_codes = operation_filter.status_codes
        if status_codes is not None:
            declared = set()
            for code in operation.responses:
                try:
                    declared.add(int(code))
                except ValueError:
                    continue
            if status_codes.include and not declared.intersection(status_codes.include):
                return False
            if status_codes.exclude and declared.intersection(status_codes.exclude):
                return False

        parameters = operation_filter.parameters
        if parameters is not None:
            names = set(operation.parameter_names)
            if parameters.required and not names.intersection(parameters.required):
                return False
            if parameters.forbidden and names.intersection(parameters.forbidden):
                return False

        if operation_filter.custom_filter is not None:
            return bool(operation_filter.custom_filter(operation, method, path))

        return True

    @staticmethod
    def filter_endpoints(
        operations: Sequence[NormalizedOperation], options: Optional[FilterOptions] = None
    ) -> List[NormalizedOperation]:
        """Return the operations that pass ``should_include``, in input order."""
        selected = [op for op in operations if EndpointFilter.should_include(op, options)]
        logger.debug("Endpoint filter kept %d of %d operations", len(selected), len(operations))
        return selected


class FilterValidation(BaseModel):
    valid: bool = True
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


def _check_list(section: Dict[str, Any], key: str, label: str, kind: str, result: FilterValidation) -> None:
    if key in section and section[key] is not None and not isinstance(section[key], list):
        result.errors.append(f"{label}.{key} must be a list of {kind}")
        result.valid = False


def validate_operation_filter(raw: Any) -> FilterValidation:
    """Validate a raw operation filter configuration (as read from YAML or JSON)."""
    result = FilterValidation()

    if not isinstance(raw, dict):
        result.errors.append("Operation filter must be a mapping")
        result.valid = False
        return result

    sections = {
        "methods": ("include", "exclude", "strings"),
        "paths": ("include", "exclude", "strings"),
        "operationIds": ("include", "exclude", "strings"),
        "statusCodes": ("include", "exclude", "integers"),
        "parameters": ("required", "forbidden", "strings"),
    }
    for label, (first, second, kind) in sections.items():
        if label not in raw:
            continue
        section = raw[label]
        if not isinstance(section, dict):
            result.errors.append(f"{label} must be a mapping")
            result.valid = False
            continue
        _check_list(section, first, label, kind, result)
        _check_list(section, second, label, kind, result)

    methods = raw.get("methods")
    if isinstance(methods, dict):
        for key in ("include", "exclude"):
            values = methods.get(key)
            if isinstance(values, list):
                invalid = [m for m in values if str(m).upper() not in VALID_FILTER_METHODS]
                if invalid:
                    result.warnings.append(f"Invalid HTTP methods ({key}): {', '.join(map(str, invalid))}")

    if "customFilter" in raw and raw["customFilter"] is not None and not callable(raw["customFilter"]):
        result.errors.append("customFilter must be callable")
        result.valid = False

    return result


def _clean_strings(values: Any, upper: bool = False) -> List[str]:
    if not isinstance(values, list):
        return []
    cleaned = [v.strip().upper() if upper else v.strip() for v in values if isinstance(v, str)]
    return [v for v in cleaned if v]


def _clean_status_codes(values: Any) -> List[int]:
    if not isinstance(values, list):
        return []
    codes = []
    for value in values:
        try:
            code = int(value)
        except (TypeError, ValueError):
            continue
        if 100 <= code <= 599:
            codes.append(code)
    return codes


def normalize_operation_filter(raw: Any) -> OperationFilter:
    """Turn a raw operation filter mapping into an ``OperationFilter``.

    Methods are upper-cased, blank strings dropped and status codes outside
    100-599 discarded. Keys accept both camelCase and snake_case.
    """
    if isinstance(raw, OperationFilter):
        return raw
    if not isinstance(raw, dict):
        return OperationFilter()

    def section(*keys: str) -> Optional[Dict[str, Any]]:
        for key in keys:
            if isinstance(raw.get(key), dict):
                return raw[key]
        return None

    normalized = OperationFilter()

    methods = section("methods")
    if methods is not None:
        normalized.methods = PatternRule(
            include=_clean_strings(methods.get("include"), upper=True),
            exclude=_clean_strings(methods.get("exclude"), upper=True),
        )

    paths = section("paths")
    if paths is not None:
        normalized.paths = PatternRule(
            include=_clean_strings(paths.get("include")),
            exclude=_clean_strings(paths.get("exclude")),
        )

    operation_ids = section("operationIds", "operation_ids")
    if operation_ids is not None:
        normalized.operation_ids = PatternRule(
            include=_clean_strings(operation_ids.get("include")),
            exclude=_clean_strings(operation_ids.get("exclude")),
        )

    status_codes = section("statusCodes", "status_codes")
    if status_codes is not None:
        normalized.status_codes = StatusCodeRule(
            include=_clean_status_codes(status_codes.get("include")),
            exclude=_clean_status_codes(status_codes.get("exclude")),
        )

    parameters = section("parameters")
    if parameters is not None:
        normalized.parameters = ParameterRule(
            required=_clean_strings(parameters.get("required")),
            forbidden=_clean_strings(parameters.get("forbidden")),
        )

    custom = raw.get("customFilter", raw.get("custom_filter"))
    if callable(custom):
        normalized.custom_filter = custom

    return normalized
