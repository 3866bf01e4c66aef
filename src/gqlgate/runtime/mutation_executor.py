"""
Mutation pipeline for gqlgate.

Wraps mutation resolvers so that every mutation returns a payload of the
shape:

    type SetUserEmailPayload {
      result: SetUserEmailResult!   # success variant or a failure variant
      query: Query!                 # root query for re-fetching after the write
    }

Anticipated failures (validation, conflict, not-found, permission) become
typed failure variants of the result union. Only unanticipated exceptions
and timeouts reach the transport errors array.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from inspect import isawaitable
from typing import Any, Callable, Mapping, Optional

from graphql import GraphQLResolveInfo
from pydantic import ValidationError as PydanticValidationError

from ..core.defs import MutationDef
from ..core.errors import ForbiddenError, MutationFailure, MutationTimeout, NotFoundError
from ..core.utils import mutation_success_name
from ..core.variants import TYPENAME_KEY

logger = logging.getLogger(__name__)

# Built-in variants present in generated result unions
ERROR_INTERFACE = "Error"
DEFAULT_FAILURE = "MutationError"
INVALID_INPUT_FAILURE = "InvalidInputError"
INVALID_INPUT_CODE = "INVALID_INPUT"

# Exceptions raised by resolvers that count as anticipated failures
ANTICIPATED_ERRORS = (ForbiddenError, NotFoundError)


@dataclass
class MutationPayload:
    """Value of a generated ``<Name>Payload`` type."""
    result: dict[str, Any]
    query: Any


class MutationPipeline:
    """
    Executes mutations and builds their result-union payloads.

    Usage:
        pipeline = MutationPipeline(schema_def.mutations, timeout=15.0)
        payload = await pipeline.run_mutation("setUserEmail", {...}, context)
    """

    def __init__(self, mutations: Mapping[str, MutationDef], *, timeout: Optional[float] = 15.0):
        """
        Initialize pipeline.

        Args:
            mutations: Mutation name -> definition
            timeout: Upper bound for a mutation resolver in seconds (None disables)
        """
        self.mutations = dict(mutations)
        self.timeout = timeout
        self._variants: dict[str, dict[str, str]] = {
            name: {failure.code: failure.name for failure in mutation.failures}
            for name, mutation in self.mutations.items()
        }

    def variant_names(self, name: str) -> list[str]:
        """All member type names of a mutation's result union, success first."""
        mutation = self.mutations[name]
        names = [mutation_success_name(name)]
        names.extend(failure.name for failure in mutation.failures)
        if mutation.input_model is not None:
            names.append(INVALID_INPUT_FAILURE)
        names.append(DEFAULT_FAILURE)
        return list(dict.fromkeys(names))

    def resolver(self, name: str) -> Callable[..., Any]:
        """graphql-core resolver for the mutation field."""

        async def resolve(root: Any, info: GraphQLResolveInfo, **args: Any) -> MutationPayload:
            return await self.run_mutation(name, args["input"], info.context, root=root)

        return resolve

    async def run_mutation(self, name: str, input: Any, context: Any, *, root: Any = None) -> MutationPayload:
        """
        Run a mutation and wrap the outcome.

        Args:
            name: Mutation name
            input: Coerced value of the ``input`` argument
            context: Request context
            root: Root value, exposed as the payload's ``query``

        Returns:
            MutationPayload with the result variant

        Raises:
            MutationTimeout: If the resolver exceeds the timeout
            Exception: Any unanticipated resolver exception
        """
        mutation = self.mutations[name]
        query = root if root is not None else {}

        if mutation.input_model is not None:
            try:
                input = mutation.input_model.model_validate(input)
            except PydanticValidationError as e:
                logger.info(f"Mutation {name} rejected invalid input ({e.error_count()} violation(s))")
                return MutationPayload(result=self._invalid_input(e), query=query)

        try:
            outcome = await asyncio.wait_for(self._call(mutation, input, context), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Mutation {name} timed out after {self.timeout}s")
            raise MutationTimeout(name, self.timeout)
        except MutationFailure as failure:
            outcome = failure
        except ANTICIPATED_ERRORS as e:
            outcome = MutationFailure(e.code, e.message)

        if isinstance(outcome, MutationFailure):
            result = self._failure(name, outcome)
            logger.info(f"Mutation {name} failed with {result[TYPENAME_KEY]} ({outcome.code})")
        else:
            result = self._success(name, mutation, outcome)

        return MutationPayload(result=result, query=query)

    async def _call(self, mutation: MutationDef, input: Any, context: Any) -> Any:
        outcome = mutation.resolve(input, context)
        if isawaitable(outcome):
            outcome = await outcome
        return outcome

    def _success(self, name: str, mutation: MutationDef, value: Any) -> dict[str, Any]:
        if isinstance(value, Mapping):
            result = dict(value)
        else:
            result = {field: getattr(value, field, None) for field in mutation.output}
        result[TYPENAME_KEY] = mutation_success_name(name)
        return result

    def _failure(self, name: str, failure: MutationFailure) -> dict[str, Any]:
        typename = self._variants[name].get(failure.code)
        if typename is None:
            # Unrecognized codes fall back to the default variant without extra fields
            return {TYPENAME_KEY: DEFAULT_FAILURE, "code": failure.code, "message": failure.message}
        return {**failure.fields, TYPENAME_KEY: typename, "code": failure.code, "message": failure.message}

    def _invalid_input(self, error: PydanticValidationError) -> dict[str, Any]:
        violations = [
            {"path": [str(part) for part in item["loc"]], "message": item["msg"]}
            for item in error.errors()
        ]
        return {
            TYPENAME_KEY: INVALID_INPUT_FAILURE,
            "code": INVALID_INPUT_CODE,
            "message": "Input failed validation",
            "violations": violations,
        }
