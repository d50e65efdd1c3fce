from typing import Any, Callable, List

from faker import Faker

from pg_mask.blueprint import Blueprint, BlueprintRegistry, declare_table
from pg_mask.common.dto import TableReport
from pg_mask.common.enums import AnonMode
from pg_mask.context import Context
from pg_mask.modes.anonymize import AnonymizeMode
from pg_mask.modes.replicate import ReplicateMode


class Anonymizer:
    """
    Entry point of table descriptions.

    Example of a tables file given with ``--tables-file``::

        def describe(anonymizer):
            anonymizer.table("users", lambda table: (
                table.column("email").replace_with("email_#row#@example.com"),
                table.column("name").where("id != 1").replace_with(lambda generator: generator.name()),
            ))
    """

    context: Context
    registry: BlueprintRegistry

    def __init__(self, context: Context, generator: Any = None):
        self.context = context
        self.registry = BlueprintRegistry(context.options.default_primary)
        if generator is None:
            generator = Faker(context.options.default_locale)
        self._generator = generator

    @property
    def generator(self) -> Any:
        return self._generator

    def set_generator(self, generator: Any) -> "Anonymizer":
        self._generator = generator
        return self

    def table(self, name: str, callback: Callable[[Blueprint], Any]) -> Blueprint:
        """
        Describe a table with a callback receiving its blueprint
        """
        return self.registry.register(Blueprint(name, callback))

    def declare(self, name: str, **kwargs) -> Blueprint:
        """
        Describe a table with plain declarations, see ``declare_table()``
        """
        kwargs.setdefault("default_primary", self.registry.default_primary)
        return self.registry.register(declare_table(name, **kwargs))

    def _get_mode(self):
        if self.context.options.mode == AnonMode.ANONYMIZE:
            return AnonymizeMode(self.context, self.registry, self._generator)

        if self.context.options.mode == AnonMode.REPLICATE:
            return ReplicateMode(self.context, self.registry, self._generator)

        raise RuntimeError("Unknown mode: " + self.context.options.mode.value)

    async def run(self) -> List[TableReport]:
        return await self._get_mode().run()
