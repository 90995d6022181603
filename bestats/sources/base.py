"""Abstract remote attribute source."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from .object_name import ObjectName


class AttributeSource(ABC):
    """
    Connection to an engine's management interface.

    A source starts disconnected. ``open()`` connects it; any transport
    failure or ``close()`` disconnects it again. Operations on a closed
    source raise ``ConnectivityError``.
    """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """True while the connection is established."""

    @abstractmethod
    def open(self) -> None:
        """
        Connect to the engine.

        Raises:
            ConnectivityError: If the engine is unreachable or rejects
                the credentials
        """

    @abstractmethod
    def close(self) -> None:
        """Drop the connection. Safe to call when already closed."""

    @abstractmethod
    def list_identifiers(self, pattern: str) -> List[ObjectName]:
        """
        List objects whose names match an object-name pattern.

        Raises:
            QueryError: If the engine rejects the query
            ConnectivityError: If the connection is lost
        """

    @abstractmethod
    def get_attributes(self, name: ObjectName) -> Dict[str, Any]:
        """
        Read every attribute of one object.

        Raises:
            AttributeFetchError: If the engine cannot read the object
            ConnectivityError: If the connection is lost
        """

    @abstractmethod
    def invoke(self, name: ObjectName, operation: str) -> None:
        """
        Invoke a no-argument operation on one object.

        Raises:
            ResetError: If the operation fails on the engine
            ConnectivityError: If the connection is lost
        """

    def count_objects(self) -> int:
        """Number of objects registered on the engine."""
        return len(self.list_identifiers("*:*"))

    def domains(self) -> List[str]:
        """Sorted list of object-name domains registered on the engine."""
        return sorted({name.domain for name in self.list_identifiers("*:*")})

    def __enter__(self) -> "AttributeSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
