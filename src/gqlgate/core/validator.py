"""
Document validator.

Turns a parsed request envelope into a ValidatedOperation that is safe to
execute:

1. Resolve the document (persisted identifier or raw text) and enforce the
   registry's allow-list
2. Reject documents containing subscriptions
3. Validate against the schema with every graphql-core rule plus a maximum
   selection depth, collecting all violations
4. Select the operation by operationName
5. Coerce variables against the operation's variable definitions

Nothing here executes resolvers.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Optional

from graphql import (
    FieldNode,
    FragmentSpreadNode,
    GraphQLError,
    GraphQLSchema,
    InlineFragmentNode,
    OperationDefinitionNode,
    OperationType,
    SelectionSetNode,
    specified_rules,
    validate,
)
from graphql.execution.values import get_variable_values
from graphql.validation import ValidationRule

from .errors import (
    AmbiguousOperation,
    OperationNotFound,
    QueryNotWhitelisted,
    SchemaValidationError,
    UnsupportedOperation,
)
from .query_types import GraphQLRequest
from .registry import OperationDocument, QueryRegistry, document_identifier

logger = logging.getLogger(__name__)


@dataclass
class ValidatedOperation:
    """A single operation of a validated document, ready for execution."""
    document: OperationDocument
    operation: OperationDefinitionNode
    variables: dict[str, Any] = field(default_factory=dict)  # raw values, already known to coerce
    coerced_variables: dict[str, Any] = field(default_factory=dict)
    persisted_id: Optional[str] = None

    @property
    def operation_type(self) -> OperationType:
        return self.operation.operation

    @property
    def name(self) -> Optional[str]:
        return self.operation.name.value if self.operation.name else None


def max_depth_rule(max_depth: int) -> type[ValidationRule]:
    """Build a validation rule limiting selection depth to max_depth."""

    class MaxDepthRule(ValidationRule):
        def enter_operation_definition(self, node: OperationDefinitionNode, *_args: Any) -> None:
            depth = self._depth(node.selection_set, frozenset())
            if depth > max_depth:
                name = node.name.value if node.name else "anonymous"
                self.report_error(GraphQLError(
                    f"Operation '{name}' has depth {depth}, exceeding the maximum of {max_depth}",
                    node,
                ))

        def _depth(self, selection_set: Optional[SelectionSetNode], visited: frozenset[str]) -> int:
            if selection_set is None:
                return 0
            deepest = 0
            for selection in selection_set.selections:
                if isinstance(selection, FieldNode):
                    deepest = max(deepest, 1 + self._depth(selection.selection_set, visited))
                elif isinstance(selection, InlineFragmentNode):
                    deepest = max(deepest, self._depth(selection.selection_set, visited))
                elif isinstance(selection, FragmentSpreadNode):
                    name = selection.name.value
                    # Cycles are reported by NoFragmentCyclesRule
                    if name in visited:
                        continue
                    fragment = self.context.get_fragment(name)
                    if fragment is not None:
                        deepest = max(deepest, self._depth(fragment.selection_set, visited | {name}))
            return deepest

    return MaxDepthRule


class DocumentValidator:
    """
    Validates requests against the schema and the query registry.

    Usage:
        validator = DocumentValidator(schema, registry, max_depth=15)
        operation = await validator.validate(request)
    """

    def __init__(
        self,
        schema: GraphQLSchema,
        registry: QueryRegistry,
        *,
        max_depth: int = 15,
        cache_size: int = 1024,
    ):
        """
        Initialize validator.

        Args:
            schema: Compiled schema
            registry: Persisted query registry
            max_depth: Maximum selection depth of an operation
            cache_size: Number of documents whose validation result is kept
        """
        self.schema = schema
        self.registry = registry
        self.max_depth = max_depth
        self.rules = [*specified_rules, max_depth_rule(max_depth)]
        self.cache_size = cache_size
        self._violations: OrderedDict[str, list[GraphQLError]] = OrderedDict()

    async def validate(self, request: GraphQLRequest) -> ValidatedOperation:
        """
        Validate a request.

        Raises:
            UnknownQuery: Persisted identifier is not registered
            QueryNotWhitelisted: Document is not allowed in whitelist mode
            SchemaValidationError: Document or variables violate the schema
            AmbiguousOperation: operationName missing for a multi-operation document
            OperationNotFound: operationName matches no operation
            UnsupportedOperation: Subscription operation
        """
        document, persisted_id = await self._resolve_document(request)
        if any(op.operation == OperationType.SUBSCRIPTION for op in self._operations(document)):
            raise UnsupportedOperation("Subscriptions are not supported")
        self._check_schema(document)

        operation = self._select_operation(document, request.operation_name)

        variables = request.variables or {}
        coerced = get_variable_values(self.schema, operation.variable_definitions or (), variables)
        if isinstance(coerced, list):
            raise SchemaValidationError(coerced)

        return ValidatedOperation(
            document=document,
            operation=operation,
            variables=variables,
            coerced_variables=coerced,
            persisted_id=persisted_id,
        )

    def check_document(self, text: str) -> OperationDocument:
        """
        Parse and schema-validate a document without executing it.

        Used before registering documents through the admin interface.

        Raises:
            DocumentSyntaxError: If the text does not parse
            SchemaValidationError: If the document violates the schema
        """
        document = OperationDocument.parse(text)
        self._check_schema(document)
        return document

    async def _resolve_document(self, request: GraphQLRequest) -> tuple[OperationDocument, Optional[str]]:
        if request.id is not None:
            entry = await self.registry.get_entry(request.id)
            if self.registry.whitelist and not entry.allowed:
                logger.warning(f"Rejected persisted query {request.id}: not on allow-list")
                raise QueryNotWhitelisted(request.id)
            return entry.document, request.id

        text = request.query
        if self.registry.whitelist:
            digest = document_identifier(text)
            if not await self.registry.is_allowed(digest):
                logger.warning(f"Rejected raw document {digest[:12]}: not on allow-list")
                raise QueryNotWhitelisted(message="Only allowed persisted queries may be executed")
            return await self.registry.resolve(digest), digest

        return OperationDocument.parse(text), None

    def _check_schema(self, document: OperationDocument) -> None:
        violations = self._violations.get(document.digest)
        if violations is None:
            violations = validate(self.schema, document.ast, self.rules)
            self._violations[document.digest] = violations
            if len(self._violations) > self.cache_size:
                self._violations.popitem(last=False)
        else:
            self._violations.move_to_end(document.digest)

        if violations:
            raise SchemaValidationError(violations)

    def _operations(self, document: OperationDocument) -> list[OperationDefinitionNode]:
        return [d for d in document.ast.definitions if isinstance(d, OperationDefinitionNode)]

    def _select_operation(self, document: OperationDocument, name: Optional[str]) -> OperationDefinitionNode:
        operations = self._operations(document)

        if name is None:
            if len(operations) == 1:
                return operations[0]
            if not operations:
                raise OperationNotFound("Document contains no operation")
            raise AmbiguousOperation("operationName is required for a document with several operations")

        for operation in operations:
            if operation.name and operation.name.value == name:
                return operation
        raise OperationNotFound(f"Unknown operation named '{name}'")
