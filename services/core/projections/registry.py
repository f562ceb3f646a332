"""
Immutable registry of projection contracts.
No dynamic registration, no runtime mutation.
"""
from types import MappingProxyType
from typing import Iterable, List

from exceptions import UnknownProjection
from projections.contract import ProjectionContract
from projections.types import ProjectionName, SourceModelKey


class ProjectionRegistry:

    def __init__(self, definitions: Iterable[ProjectionContract]):
        mapping = {}
        for definition in definitions:
            name = ProjectionName(definition.name)
            if name in mapping:
                raise ValueError(f"Duplicate projection definition: {name.value}")
            # Closed allow-list: an unknown source key fails here, at startup
            for source in definition.sources:
                SourceModelKey(source)
            mapping[name] = definition
        self._definitions = MappingProxyType(mapping)

    def get(self, name) -> ProjectionContract:
        """
        Raises:
            UnknownProjection: name not in the registry (not a policy block)
        """
        try:
            key = ProjectionName(name)
        except ValueError:
            raise UnknownProjection(str(name))

        projection = self._definitions.get(key)
        if projection is None:
            raise UnknownProjection(key.value)
        return projection

    def list(self) -> List[ProjectionName]:
        return list(self._definitions.keys())

    def __contains__(self, name) -> bool:
        try:
            return ProjectionName(name) in self._definitions
        except ValueError:
            return False

    def __len__(self) -> int:
        return len(self._definitions)
