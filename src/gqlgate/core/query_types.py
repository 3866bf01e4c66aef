"""
Pydantic models for the GraphQL wire envelope.

Request:  {"query"?: str, "id"?: str, "variables"?: {...}, "operationName"?: str}
Response: {"data"?: any, "errors"?: [{"message", "path"?, "locations"?, "extensions"?}]}
"""

from __future__ import annotations

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictStr, model_validator

from .errors import GatewayError


class GraphQLRequest(BaseModel):
    """
    Incoming GraphQL request envelope.

    Exactly one of query/id must be present.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    query: Optional[StrictStr] = None
    id: Optional[StrictStr] = None
    variables: Optional[dict[str, Any]] = None
    operation_name: Optional[StrictStr] = Field(default=None, alias="operationName")
    extensions: Optional[dict[str, Any]] = None

    @model_validator(mode="after")
    def _exactly_one_source(self) -> "GraphQLRequest":
        if self.query is not None and self.id is not None:
            raise ValueError("Request must not contain both 'query' and 'id'")
        if self.query is None and self.id is None:
            raise ValueError("Request must contain either 'query' or 'id'")
        return self


class ErrorEntry(BaseModel):
    """A single GraphQL error."""
    message: str
    locations: Optional[list[dict[str, int]]] = None
    path: Optional[list[Union[str, int]]] = None
    extensions: Optional[dict[str, Any]] = None


class GraphQLResponse(BaseModel):
    """
    Outgoing GraphQL response.

    data is only serialized when execution started, so validation failures
    carry errors alone while a fully nulled execution carries
    ``"data": null``.
    """
    data: Optional[Any] = None
    errors: Optional[list[ErrorEntry]] = None

    @classmethod
    def from_error(cls, error: GatewayError) -> "GraphQLResponse":
        return cls(errors=[ErrorEntry(**entry) for entry in error.to_dicts()])

    @classmethod
    def internal_error(cls) -> "GraphQLResponse":
        return cls(
            data=None,
            errors=[ErrorEntry(
                message="Internal server error",
                extensions={"code": "INTERNAL_SERVER_ERROR"},
            )],
        )

    def to_wire(self) -> dict[str, Any]:
        """Serialize for the transport, omitting members that were never set."""
        return self.model_dump(exclude_unset=True)
