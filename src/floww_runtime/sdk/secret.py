"""Typed secrets for workflow bundles."""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel

from floww_runtime.runtime.context import current_context

ModelT = TypeVar("ModelT", bound=BaseModel)


class Secret(Generic[ModelT]):
    """A named secret validated against a pydantic model.

    Declare at module level, read inside a handler:

        class Database(BaseModel):
            url: str

        db = Secret("database", Database)

        def handler(ctx, event):
            conn = connect(db.value().url)
    """

    def __init__(self, name: str, schema: type[ModelT]) -> None:
        if not name:
            raise ValueError("secret name is required")
        self.name = name
        self.schema = schema

    def value(self) -> ModelT:
        """Resolve through the active invocation.

        Raises:
            SecretValidationError: if the secret is missing or invalid.
            RuntimeError: if called outside a trigger invocation.
        """

        return current_context().secrets.get(self.name, self.schema)

    def __repr__(self) -> str:
        return f"Secret({self.name!r}, {self.schema.__name__})"
