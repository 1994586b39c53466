"""
Registry of named indicator definitions.

Definitions are built once, when registered at startup, and are read-only
afterwards. A factory that produces a malformed definition is rejected and
logged; the rest of the library still loads.
"""

from collections.abc import Callable, Iterable
from typing import TypeVar

import structlog

from indicator_engine.domain.models import IndicatorDefinition
from indicator_engine.exceptions import DefinitionError, DuplicateIndicatorError, NotFoundError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

IndicatorFactory = Callable[[], IndicatorDefinition]


class IndicatorLibrary:
    """Maps indicator names to their definitions.

    Example:
        library = IndicatorLibrary("art")
        library.register("started_art", started_art)
        library.register_family("started_art_with_who_stage_{}", started_art_with_who_stage, range(1, 5))
    """

    def __init__(self, name: str = "default") -> None:
        self.name = name
        self._definitions: dict[str, IndicatorDefinition] = {}
        self.rejected: dict[str, DefinitionError] = {}
        self.logger = logger.bind(component="indicator_library", library=name)

    def register(self, name: str, factory: IndicatorFactory) -> IndicatorDefinition | None:
        """Build and register one indicator.

        Args:
            name: Unique indicator name; overrides the name the factory sets
            factory: Zero-argument callable returning the definition

        Returns:
            The registered definition, or None if the factory raised a
            DefinitionError (the error is kept in ``rejected``)

        Raises:
            DuplicateIndicatorError: If ``name`` is already registered
        """
        if name in self._definitions:
            raise DuplicateIndicatorError(name)

        try:
            definition = factory()
        except DefinitionError as e:
            self.rejected[name] = e
            self.logger.error("indicator_definition_rejected", indicator=name, error=str(e))
            return None

        if not isinstance(definition, IndicatorDefinition):
            raise TypeError(
                f"Factory for '{name}' returned {type(definition).__name__}, "
                "expected IndicatorDefinition"
            )
        if definition.name != name:
            definition = definition.model_copy(update={"name": name})

        self._definitions[name] = definition
        self.rejected.pop(name, None)
        self.logger.debug(
            "indicator_registered",
            indicator=name,
            parameters=sorted(definition.required_parameters),
        )
        return definition

    def indicator(self, name: str) -> Callable[[IndicatorFactory], IndicatorFactory]:
        """Decorator form of :meth:`register`."""

        def decorator(factory: IndicatorFactory) -> IndicatorFactory:
            self.register(name, factory)
            return factory

        return decorator

    def register_family(
        self,
        template: str,
        factory: Callable[[T], IndicatorDefinition],
        values: Iterable[T],
    ) -> list[str]:
        """Register one indicator per value, named ``template.format(value)``.

        All names are checked before anything is registered, so a clash
        leaves the library unchanged.

        Returns:
            Names that were registered (rejected members are left out)
        """
        members = [(template.format(value), value) for value in values]
        names = [name for name, _ in members]

        seen: set[str] = set()
        for name in names:
            if name in self._definitions or name in seen:
                raise DuplicateIndicatorError(name)
            seen.add(name)

        registered = []
        for name, value in members:
            if self.register(name, lambda value=value: factory(value)) is not None:
                registered.append(name)
        self.logger.info("indicator_family_registered", template=template, count=len(registered))
        return registered

    def get(self, name: str) -> IndicatorDefinition:
        """Look up an indicator by name.

        Raises:
            NotFoundError: If no indicator has that name
        """
        try:
            return self._definitions[name]
        except KeyError:
            raise NotFoundError(name, available=self._definitions) from None

    def list_names(self) -> list[str]:
        """Registered names, in registration order."""
        return list(self._definitions)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)
