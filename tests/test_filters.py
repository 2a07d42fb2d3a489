"""Tests for endpoint selection."""

from typing import List

from mcp_swagger.extractor import extract_operation
from mcp_swagger.filters import (
    EndpointFilter,
    matches_pattern,
    normalize_operation_filter,
    validate_operation_filter,
)
from mcp_swagger.models import (
    FilterOptions,
    HttpMethod,
    NormalizedOperation,
    OpenAPISpec,
    OperationFilter,
    Parameter,
    ParameterRule,
    PatternRule,
    StatusCodeRule,
)


def make_operation(
    method: str = "GET",
    path: str = "/pets",
    operation_id: str = None,
    tags: List[str] = None,
    deprecated: bool = False,
    params: List[str] = None,
    responses: List[str] = None,
) -> NormalizedOperation:
    return NormalizedOperation(
        method=HttpMethod(method),
        path=path,
        operation_id=operation_id,
        tags=tags or [],
        deprecated=deprecated,
        parameters=[Parameter(name=name, location="query") for name in params or []],
        responses={code: "" for code in responses or ["200"]},
    )


def with_filter(**kwargs) -> FilterOptions:
    return FilterOptions(operation_filter=OperationFilter(**kwargs))


def test_method_include():
    """Only the included method survives."""
    operations = [make_operation("GET"), make_operation("POST")]

    result = EndpointFilter.filter_endpoints(operations, with_filter(methods=PatternRule(include=["GET"])))

    assert [op.method for op in result] == [HttpMethod.GET]


def test_method_exclude_wins_over_include():
    options = with_filter(methods=PatternRule(include=["GET", "POST"], exclude=["POST"]))

    assert EndpointFilter.should_include(make_operation("GET"), options)
    assert not EndpointFilter.should_include(make_operation("POST"), options)


def test_path_globs():
    options = with_filter(paths=PatternRule(include=["/pets*"], exclude=["/pets/*/photos"]))

    assert EndpointFilter.should_include(make_operation(path="/pets"), options)
    assert EndpointFilter.should_include(make_operation(path="/pets/{id}"), options)
    assert not EndpointFilter.should_include(make_operation(path="/pets/{id}/photos"), options)
    assert not EndpointFilter.should_include(make_operation(path="/users"), options)


def test_pattern_is_anchored_and_case_insensitive():
    assert matches_pattern("/Pets", "/pets")
    assert matches_pattern("getPetById", "get*")
    assert not matches_pattern("/api/pets", "/pets")
    assert matches_pattern("a.b", "a.b")
    assert not matches_pattern("axb", "a.b")


def test_operation_id_rule_skipped_without_id():
    options = with_filter(operation_ids=PatternRule(include=["list*"]))

    assert EndpointFilter.should_include(make_operation(operation_id="listPets"), options)
    assert not EndpointFilter.should_include(make_operation(operation_id="createPet"), options)
    assert EndpointFilter.should_include(make_operation(operation_id=None), options)


def test_status_codes():
    options = with_filter(status_codes=StatusCodeRule(include=[200], exclude=[410]))

    assert EndpointFilter.should_include(make_operation(responses=["200", "404"]), options)
    assert not EndpointFilter.should_include(make_operation(responses=["201"]), options)
    assert not EndpointFilter.should_include(make_operation(responses=["200", "410"]), options)
    assert not EndpointFilter.should_include(make_operation(responses=["default"]), options)


def test_parameters_required_matches_any():
    options = with_filter(parameters=ParameterRule(required=["limit", "offset"], forbidden=["debug"]))

    assert EndpointFilter.should_include(make_operation(params=["limit"]), options)
    assert not EndpointFilter.should_include(make_operation(params=[]), options)
    assert not EndpointFilter.should_include(make_operation(params=["limit", "debug"]), options)


def test_referenced_parameters_not_matched_by_name():
    spec = OpenAPISpec.model_validate(
        {
            "openapi": "3.0.0",
            "info": {"title": "Pets", "version": "1.0.0"},
            "paths": {},
            "components": {"parameters": {"Limit": {"name": "limit", "in": "query"}}},
        }
    )
    operation = extract_operation(
        spec, "/pets", "get", {}, {"parameters": [{"$ref": "#/components/parameters/Limit"}]}
    )
    options = with_filter(parameters=ParameterRule(required=["limit"]))

    assert [param.name for param in operation.parameters] == ["limit"]
    assert operation.parameter_names == []
    assert not EndpointFilter.should_include(operation, options)


def test_custom_filter_runs_last():
    seen = []

    def custom(operation, method, path):
        seen.append((method, path))
        return path != "/secret"

    options = with_filter(methods=PatternRule(include=["GET"]), custom_filter=custom)

    assert EndpointFilter.should_include(make_operation(path="/pets"), options)
    assert not EndpointFilter.should_include(make_operation(path="/secret"), options)
    assert not EndpointFilter.should_include(make_operation("POST", path="/pets"), options)
    assert seen == [("GET", "/pets"), ("GET", "/secret")]


def test_deprecated_excluded_by_default():
    operation = make_operation(deprecated=True)

    assert not EndpointFilter.should_include(operation)
    assert EndpointFilter.should_include(operation, FilterOptions(include_deprecated=True))


def test_tag_rules():
    include = FilterOptions(include_tags=["pets"])
    exclude = FilterOptions(exclude_tags=["admin"])

    assert EndpointFilter.should_include(make_operation(tags=["pets"]), include)
    assert not EndpointFilter.should_include(make_operation(tags=["store"]), include)
    assert not EndpointFilter.should_include(make_operation(tags=[]), include)
    assert not EndpointFilter.should_include(make_operation(tags=["pets", "admin"]), exclude)
    assert EndpointFilter.should_include(make_operation(tags=[]), exclude)


def test_filter_is_idempotent_and_monotonic():
    operations = [
        make_operation("GET", "/pets"),
        make_operation("POST", "/pets"),
        make_operation("GET", "/users"),
        make_operation("DELETE", "/pets/{id}"),
    ]
    loose = with_filter(paths=PatternRule(include=["/pets*"]))
    strict = with_filter(paths=PatternRule(include=["/pets*"]), methods=PatternRule(include=["GET"]))

    once = EndpointFilter.filter_endpoints(operations, loose)
    twice = EndpointFilter.filter_endpoints(once, loose)
    narrowed = EndpointFilter.filter_endpoints(operations, strict)

    assert once == twice
    assert all(op in once for op in narrowed)
    assert len(narrowed) == 1


def test_validate_operation_filter():
    result = validate_operation_filter(
        {"methods": {"include": ["GET", "FETCH"]}, "paths": {"include": "/pets"}, "customFilter": "nope"}
    )

    assert not result.valid
    assert "paths.include must be a list of strings" in result.errors
    assert "customFilter must be callable" in result.errors
    assert result.warnings == ["Invalid HTTP methods (include): FETCH"]


def test_validate_rejects_non_mapping():
    assert not validate_operation_filter(["GET"]).valid


def test_normalize_operation_filter():
    normalized = normalize_operation_filter(
        {
            "methods": {"include": [" get ", "", "post"]},
            "operation_ids": {"exclude": ["internal*"]},
            "statusCodes": {"include": [200, "201", 42, "abc"]},
            "parameters": {"forbidden": ["debug", "  "]},
        }
    )

    assert normalized.methods.include == ["GET", "POST"]
    assert normalized.operation_ids.exclude == ["internal*"]
    assert normalized.status_codes.include == [200, 201]
    assert normalized.parameters.forbidden == ["debug"]
    assert normalized.paths is None


def test_normalize_passes_through_existing_filter():
    existing = OperationFilter(methods=PatternRule(include=["GET"]))

    assert normalize_operation_filter(existing) is existing
