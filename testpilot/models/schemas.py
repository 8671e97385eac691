from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum


class VariableType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    NULL = "null"


class EnvironmentType(str, Enum):
    ENVIRONMENT_SET = "environment_set"
    SINGLE_ENVIRONMENT = "single_environment"


# Environments

class VariableDefinition(BaseModel):
    type: VariableType = Field(default=VariableType.STRING)
    description: Optional[str] = None
    required: bool = False
    default_value: Optional[Any] = Field(None, description="Used when a sub-environment has no value")


class SubEnvironment(BaseModel):
    name: str = Field(..., description="Display name, e.g. dev, staging, prod")
    description: Optional[str] = None
    variables: Dict[str, Any] = Field(default_factory=dict)
    api_hosts: Dict[str, str] = Field(default_factory=dict, description="API id -> host URL override")


class EnvironmentConfig(BaseModel):
    type: EnvironmentType = Field(default=EnvironmentType.ENVIRONMENT_SET)
    environments: Dict[str, SubEnvironment] = Field(default_factory=dict)
    variable_definitions: Dict[str, VariableDefinition] = Field(default_factory=dict)
    linked_apis: List[int] = Field(default_factory=list)


class EnvironmentBase(BaseModel):
    name: str = Field(..., description="Environment name")
    description: Optional[str] = None
    config: EnvironmentConfig = Field(default_factory=EnvironmentConfig)


class EnvironmentCreate(EnvironmentBase):
    pass


class EnvironmentUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    config: Optional[EnvironmentConfig] = None


class Environment(EnvironmentBase):
    id: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ResolvedEnvironment(BaseModel):
    id: int
    name: str
    sub_environment: str
    variables: Dict[str, Any] = Field(default_factory=dict, description="Values for the selected sub-environment")
    defaults: Dict[str, Any] = Field(default_factory=dict, description="Declared default values")
    api_hosts: Dict[str, str] = Field(default_factory=dict)


# Flow parameters and outputs

class FlowParameter(BaseModel):
    name: str
    type: VariableType = Field(default=VariableType.STRING)
    value: Optional[Any] = None
    default_value: Optional[Any] = None
    description: Optional[str] = None
    required: bool = False


class FlowOutput(BaseModel):
    name: str
    value: Any = Field(None, description="Template expression or literal value")
    is_template: bool = True
    type: Optional[VariableType] = None
    cast_to_type: bool = False


# Template rendering

class TemplateContextPayload(BaseModel):
    responses: Dict[str, Any] = Field(default_factory=dict, description="Captured responses keyed by alias")
    processed: Dict[str, Any] = Field(default_factory=dict, description="Derived values keyed by alias")
    parameters: Dict[str, Any] = Field(default_factory=dict, description="Explicit parameter values")
    parameter_definitions: List[FlowParameter] = Field(default_factory=list)
    parameter_mappings: Dict[str, str] = Field(
        default_factory=dict, description="Parameter name -> environment variable name"
    )
    environment: Dict[str, Any] = Field(default_factory=dict, description="Already-resolved environment variables")
    environment_id: Optional[int] = Field(None, description="Stored environment to resolve variables from")
    sub_environment: Optional[str] = Field(None, description="Sub-environment of environment_id")


class RenderRequest(TemplateContextPayload):
    template: Any = Field(..., description="String, object or array containing {{...}} expressions")
    json_text: bool = Field(False, description="Treat a string template as a JSON document")


class RenderIssue(BaseModel):
    location: str
    expression: str
    position: int
    kind: str
    message: str


class RenderResponse(BaseModel):
    value: Any = None
    warnings: List[RenderIssue] = Field(default_factory=list)


class ParseRequest(BaseModel):
    template: str


class ParsedSegment(BaseModel):
    type: str = Field(..., description="literal, expression or malformed")
    raw: str
    position: int
    namespace: Optional[str] = None
    path: Optional[str] = None
    preserve_type: Optional[bool] = None
    reason: Optional[str] = None


class ParseResponse(BaseModel):
    segments: List[ParsedSegment] = Field(default_factory=list)


class FunctionInfo(BaseModel):
    name: str
    arity: str
    arg_types: List[str] = Field(default_factory=list)
    deterministic: bool
    description: str = ""


class EvaluateOutputsRequest(TemplateContextPayload):
    outputs: List[FlowOutput] = Field(default_factory=list)


class EvaluateOutputsResponse(BaseModel):
    outputs: Dict[str, Any] = Field(default_factory=dict)


# Assertions

class AssertionOperator(str, Enum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    EXISTS = "exists"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    MATCHES_REGEX = "matches_regex"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    GREATER_THAN = "greater_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN = "less_than"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    BETWEEN = "between"
    NOT_BETWEEN = "not_between"
    HAS_LENGTH = "has_length"
    LENGTH_GREATER_THAN = "length_greater_than"
    LENGTH_LESS_THAN = "length_less_than"
    CONTAINS_ALL = "contains_all"
    CONTAINS_ANY = "contains_any"
    NOT_CONTAINS_ANY = "not_contains_any"
    ONE_OF = "one_of"
    NOT_ONE_OF = "not_one_of"
    IS_TYPE = "is_type"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"


class AssertionDataSource(str, Enum):
    RESPONSE = "response"
    TRANSFORMED_DATA = "transformed_data"


class AssertionType(str, Enum):
    STATUS_CODE = "status_code"
    RESPONSE_TIME = "response_time"
    HEADER = "header"
    JSON_BODY = "json_body"


class Assertion(BaseModel):
    id: str = ""
    data_source: AssertionDataSource = Field(default=AssertionDataSource.RESPONSE)
    assertion_type: AssertionType = Field(default=AssertionType.JSON_BODY)
    data_id: str = Field("", description="Header name or JSONPath into the body")
    operator: AssertionOperator
    expected_value: Any = None
    enabled: bool = True
    is_template_expression: bool = Field(False, description="Render expected_value before comparing")


class AssertionResult(BaseModel):
    assertion_id: str = ""
    passed: bool
    actual_value: Any = None
    expected_value: Any = None
    original_expected_value: Any = Field(None, description="Template text when expected_value was rendered")
    message: Optional[str] = None
    error: Optional[str] = None


class StepResponse(BaseModel):
    status: int = 200
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Any = None
    response_time_ms: float = 0


class EvaluateAssertionsRequest(TemplateContextPayload):
    response: StepResponse = Field(default_factory=StepResponse)
    transformed_data: Optional[Dict[str, Any]] = Field(None, description="Data derived from the response body")
    assertions: List[Assertion] = Field(default_factory=list)


class EvaluateAssertionsResponse(BaseModel):
    passed: bool
    results: List[AssertionResult] = Field(default_factory=list)
    failure_message: Optional[str] = None
