"""
Data models for the OpenAPI to MCP bridge.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class HttpMethod(str, Enum):
    """HTTP methods that can become tools."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


class ParameterLocation(str, Enum):
    QUERY = "query"
    HEADER = "header"
    PATH = "path"
    COOKIE = "cookie"


class Parameter(BaseModel):
    """A declared operation parameter."""

    name: str
    location: ParameterLocation
    required: bool = False
    value_schema: Dict[str, Any] = Field(default_factory=dict)
    description: Optional[str] = None
    ref: Optional[str] = None


class RequestBody(BaseModel):
    """A declared request body, keyed by media type."""

    required: bool = False
    content: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    description: Optional[str] = None


class NormalizedOperation(BaseModel):
    """One HTTP operation extracted from a specification."""

    model_config = ConfigDict(frozen=True)

    method: HttpMethod
    path: str
    operation_id: Optional[str] = None
    summary: Optional[str] = None
    description: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    deprecated: bool = False
    parameters: List[Parameter] = Field(default_factory=list)
    request_body: Optional[RequestBody] = None
    responses: Dict[str, str] = Field(default_factory=dict)

    @property
    def parameter_names(self) -> List[str]:
        """Names of directly declared parameters. Ones reached through a ``$ref`` are left out."""
        return [param.name for param in self.parameters if param.ref is None]


class SpecInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    title: str = "Untitled API"
    version: str = "1.0.0"
    description: Optional[str] = None


class OpenAPISpec(BaseModel):
    """A parsed and dereferenced OpenAPI (or Swagger 2.0) document."""

    model_config = ConfigDict(extra="allow")

    openapi: Optional[str] = None
    swagger: Optional[str] = None
    info: SpecInfo = Field(default_factory=SpecInfo)
    servers: List[Dict[str, Any]] = Field(default_factory=list)
    paths: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    components: Dict[str, Any] = Field(default_factory=dict)
    host: Optional[str] = None
    basePath: Optional[str] = None
    schemes: List[str] = Field(default_factory=list)

    def server_url(self) -> Optional[str]:
        """Return the first declared server URL, if any."""
        if self.servers and self.servers[0].get("url"):
            return self.servers[0]["url"]
        if self.host:
            scheme = self.schemes[0] if self.schemes else "https"
            return f"{scheme}://{self.host}{self.basePath or ''}"
        return None


class SpecIssue(BaseModel):
    path: str
    message: str
    code: str


class SpecValidation(BaseModel):
    valid: bool = True
    errors: List[SpecIssue] = Field(default_factory=list)


class ParseResult(BaseModel):
    """Result of loading a specification from a file or URL."""

    spec: OpenAPISpec
    validation: SpecValidation = Field(default_factory=SpecValidation)
    source: Optional[str] = None


class PatternRule(BaseModel):
    include: List[str] = Field(default_factory=list)
    exclude: List[str] = Field(default_factory=list)


class StatusCodeRule(BaseModel):
    include: List[int] = Field(default_factory=list)
    exclude: List[int] = Field(default_factory=list)


class ParameterRule(BaseModel):
    required: List[str] = Field(default_factory=list)
    forbidden: List[str] = Field(default_factory=list)


class OperationFilter(BaseModel):
    """Declarative operation selection; every present clause must pass."""

    methods: Optional[PatternRule] = None
    paths: Optional[PatternRule] = None
    operation_ids: Optional[PatternRule] = None
    status_codes: Optional[StatusCodeRule] = None
    parameters: Optional[ParameterRule] = None
    custom_filter: Optional[Callable[[NormalizedOperation, str, str], bool]] = None


class FilterOptions(BaseModel):
    include_deprecated: bool = False
    include_tags: List[str] = Field(default_factory=list)
    exclude_tags: List[str] = Field(default_factory=list)
    operation_filter: Optional[OperationFilter] = None


class BearerConfig(BaseModel):
    token: Optional[str] = None
    source: Literal["static", "env"] = "static"
    env_name: Optional[str] = None


class AuthConfig(BaseModel):
    type: Literal["none", "bearer"] = "none"
    bearer: Optional[BearerConfig] = None


class TransformOptions(FilterOptions):
    """Options controlling how operations become tools."""

    base_url: Optional[str] = None
    request_timeout: float = 30.0
    path_prefix: str = ""
    strip_path_prefix: str = ""
    tag_filter: List[str] = Field(default_factory=list)
    operation_id_prefix: str = ""
    enable_auth: bool = False
    auth_headers: Dict[str, str] = Field(default_factory=dict)
    auth: Optional[AuthConfig] = None
    custom_headers: Dict[str, str] = Field(default_factory=dict)
    allow_auth_override: bool = False
    # httpx transport used by every dispatcher, mostly for tests
    http_transport: Optional[Any] = None


class ToolMetadata(BaseModel):
    tags: List[str] = Field(default_factory=lambda: ["api"])
    deprecated: bool = False
    http_method: Optional[str] = None
    endpoint: Optional[str] = None
    version: str = "1.0.0"
    operation_id: Optional[str] = None


class ToolDescriptor(BaseModel):
    """A callable tool produced from one API operation."""

    id: str = ""
    name: str = ""
    description: str = ""
    input_schema: Dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}, "required": []}
    )
    handler: Optional[Callable[..., Awaitable[Any]]] = None
    metadata: Optional[ToolMetadata] = None

    def describe(self) -> Dict[str, Any]:
        """Return a serializable view of the tool without its handler."""
        return self.model_dump(exclude={"handler"}, mode="json")


class ValidationIssue(BaseModel):
    field: str
    message: str
    code: str


class ValidationResult(BaseModel):
    valid: bool = True
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)


class ExecutionStats(BaseModel):
    count: int = 0
    total_time_ms: float = 0.0
    error_count: int = 0
    last_executed_at: Optional[datetime] = None


class ToolEventType(str, Enum):
    TOOL_REGISTERED = "toolRegistered"
    TOOL_UNREGISTERED = "toolUnregistered"
    TOOL_EXECUTED = "toolExecuted"
    TOOL_ERROR = "toolError"


class ToolManagerEvent(BaseModel):
    type: ToolEventType
    tool: ToolDescriptor
    timestamp: datetime = Field(default_factory=datetime.now)
    metadata: Optional[Dict[str, Any]] = None


class ExecutionRollup(BaseModel):
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    average_execution_time: float = 0.0


class ToolManagerStats(BaseModel):
    total_tools: int = 0
    tag_count: int = 0
    tools_by_tag: Dict[str, int] = Field(default_factory=dict)
    execution_stats: ExecutionRollup = Field(default_factory=ExecutionRollup)


class ToolAnalysis(BaseModel):
    total_tools: int = 0
    deprecated_count: int = 0
    tag_distribution: Dict[str, int] = Field(default_factory=dict)
    unique_tags: int = 0


class OperationResult(BaseModel):
    """Outcome of one unit in a batch operation."""

    id: str
    success: bool
    error: Optional[str] = None


class ServerConfig(BaseModel):
    id: Optional[str] = None
    name: str
    version: str = "1.0.0"
    description: Optional[str] = None
    capabilities: Dict[str, Any] = Field(default_factory=lambda: {"tools": {}})


class ServerStatus(BaseModel):
    id: str
    name: str
    status: Literal["running", "stopped"]
    uptime_ms: float
    tool_count: int
    last_error: Optional[str] = None
    created_at: datetime
    memory_usage: Dict[str, int] = Field(default_factory=dict)


class ServerHealth(BaseModel):
    id: str
    name: str
    healthy: bool
    error: Optional[str] = None


class HealthReport(BaseModel):
    healthy: bool
    servers: List[ServerHealth] = Field(default_factory=list)


class RegistryStats(BaseModel):
    total_servers: int = 0
    running_servers: int = 0
    total_bound_tools: int = 0
    servers_with_errors: int = 0
    tool_manager: Optional[ToolManagerStats] = None
