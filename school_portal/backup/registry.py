# SPDX-FileCopyrightText: (C) ORCD
#
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Registry for exporter and importer classes.

The registry maintains the collection of available exporters/importers
and handles dependency ordering for export/import operations.

Usage:
    @ExporterRegistry.register
    class BookExporter(BaseExporter):
        model_name = "books"
        dependencies = ["users"]
        ...

    for importer_class in ImporterRegistry.get_ordered_importers():
        ...

Dependency Resolution:
    Exporters/importers declare dependencies via the `dependencies` attribute.
    The registry uses topological sorting to ensure dependent entities are
    processed after the entities they reference. Entities with no ordering
    constraint between them keep their registration order.
"""

from typing import Dict, Iterable, List, Optional, Type
import logging

from .base import BaseExporter, BaseImporter

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Exception raised for registry errors."""
    pass


class CyclicDependencyError(RegistryError):
    """Exception raised when circular dependencies are detected."""
    pass


class BaseRegistry:
    """Common registration and ordering logic.

    Subclasses set `kind` and get their own `_items` dict.
    """

    _items: Dict[str, type] = {}
    kind: str = ""

    @classmethod
    def register(cls, item_class):
        """Decorator to register an exporter/importer class."""
        if not item_class.model_name:
            raise ValueError(
                f"{cls.kind.capitalize()} class {item_class.__name__} must define model_name"
            )

        cls._items[item_class.model_name] = item_class
        logger.debug(f"Registered {cls.kind}: {item_class.model_name}")
        return item_class

    @classmethod
    def validate_dependencies(cls) -> List[str]:
        """Validate all dependencies are registered.

        Returns:
            List of error messages (empty if valid)
        """
        errors = []
        for name, item in cls._items.items():
            for dep in item.dependencies:
                if dep not in cls._items:
                    errors.append(f"{name} depends on unregistered '{dep}'")
        return errors

    @classmethod
    def _topological_sort(cls, model_names: Iterable[str]) -> List[type]:
        """Sort items so that every item follows its dependencies.

        Args:
            model_names: Names to sort, in preferred order

        Returns:
            List of item classes in dependency order

        Raises:
            CyclicDependencyError: If dependencies form a cycle
        """
        wanted = list(model_names)
        visited = set()
        in_progress = set()
        result = []

        def visit(name: str):
            if name in in_progress:
                raise CyclicDependencyError(
                    f"Circular dependency detected involving {name}"
                )
            if name in visited:
                return

            in_progress.add(name)

            item = cls._items.get(name)
            if item:
                for dep in item.dependencies:
                    if dep in wanted:
                        visit(dep)

            in_progress.remove(name)
            visited.add(name)

            if item:
                result.append(item)

        for name in wanted:
            visit(name)

        return result

    @classmethod
    def get_ordered(
        cls,
        include: Optional[List[str]] = None,
        exclude: Optional[List[str]] = None,
    ) -> List[type]:
        """Return registered items in dependency order.

        Args:
            include: Only these model names (default: all)
            exclude: Model names to leave out

        Raises:
            RegistryError: If a dependency is not registered
            KeyError: If an included name is unknown
        """
        errors = cls.validate_dependencies()
        if errors:
            raise RegistryError("Dependency validation failed:\n" + "\n".join(errors))

        if include:
            for name in include:
                if name not in cls._items:
                    raise KeyError(f"Unknown {cls.kind}: {name}")
            names = [name for name in cls._items if name in include]
        else:
            names = list(cls._items)

        if exclude:
            names = [name for name in names if name not in exclude]

        return cls._topological_sort(names)

    @classmethod
    def get(cls, model_name: str) -> type:
        if model_name not in cls._items:
            raise KeyError(f"No {cls.kind} registered for: {model_name}")
        return cls._items[model_name]


class ExporterRegistry(BaseRegistry):
    """Registry for entity exporters."""

    _items: Dict[str, Type[BaseExporter]] = {}
    kind = "exporter"

    @classmethod
    def get_ordered_exporters(cls, include=None, exclude=None) -> List[Type[BaseExporter]]:
        return cls.get_ordered(include, exclude)

    @classmethod
    def get_exporter(cls, model_name: str) -> Type[BaseExporter]:
        return cls.get(model_name)


class ImporterRegistry(BaseRegistry):
    """Registry for entity importers."""

    _items: Dict[str, Type[BaseImporter]] = {}
    kind = "importer"

    @classmethod
    def get_ordered_importers(cls, include=None, exclude=None) -> List[Type[BaseImporter]]:
        return cls.get_ordered(include, exclude)

    @classmethod
    def get_importer(cls, model_name: str) -> Type[BaseImporter]:
        return cls.get(model_name)
