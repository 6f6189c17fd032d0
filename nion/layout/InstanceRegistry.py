"""
The registry of live component instances, keyed by the identifier declared in the layout.

The registry is written only by the renderer while mounting and unmounting a layout and is read by expression
resolution and cascades.
"""

from __future__ import annotations

# standard libraries
import dataclasses
import typing

# third party libraries
# None

# local libraries
from nion.layout import Description
from nion.utils import Event


class DuplicateIdentifierError(Description.LayoutError):
    def __init__(self, identifier: str) -> None:
        super().__init__(f"Component identifier '{identifier}' is declared more than once.")
        self.identifier = identifier


def capabilities_of(instance: typing.Any) -> typing.FrozenSet[str]:
    """Return the method names the instance permits expressions to call.

    The instance declares them with a `capabilities` attribute; names that are not callable on the instance are
    dropped.
    """
    declared = getattr(instance, "capabilities", None) or ()
    if isinstance(declared, str):
        declared = (declared,)
    return frozenset(name for name in declared if not name.startswith("_") and callable(getattr(instance, name, None)))


@dataclasses.dataclass(frozen=True)
class RegistryEntry:
    identifier: str
    instance: typing.Any
    capabilities: typing.FrozenSet[str]

    def allows(self, method_name: str) -> bool:
        return method_name in self.capabilities


class InstanceRegistry:

    def __init__(self) -> None:
        self.__entries: typing.Dict[str, RegistryEntry] = dict()
        self.entry_registered_event = Event.Event()
        self.entry_unregistered_event = Event.Event()

    def __len__(self) -> int:
        return len(self.__entries)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self.__entries

    @property
    def identifiers(self) -> typing.List[str]:
        return list(self.__entries.keys())

    def register(self, identifier: str, instance: typing.Any) -> RegistryEntry:
        if identifier in self.__entries:
            raise DuplicateIdentifierError(identifier)
        entry = RegistryEntry(identifier, instance, capabilities_of(instance))
        self.__entries[identifier] = entry
        self.entry_registered_event.fire(entry)
        return entry

    def unregister(self, identifier: str) -> None:
        entry = self.__entries.pop(identifier, None)
        if entry:
            self.entry_unregistered_event.fire(entry)

    def get_entry(self, identifier: str) -> typing.Optional[RegistryEntry]:
        return self.__entries.get(identifier)

    def get_instance(self, identifier: str) -> typing.Any:
        entry = self.__entries.get(identifier)
        return entry.instance if entry else None

    def clear(self) -> None:
        for identifier in list(self.__entries.keys()):
            self.unregister(identifier)
