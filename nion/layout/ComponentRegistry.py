from __future__ import annotations

# standard libraries
import typing

# third party libraries
# None

# local libraries
from nion.utils import Registry


ComponentConstructor = typing.Callable[[typing.Dict[str, typing.Any]], typing.Any]


class ComponentLookup(typing.Protocol):
    def lookup(self, name: str) -> typing.Optional[ComponentConstructor]: ...


class LayoutComponentFactory(typing.Protocol):
    """A factory registered with the shared registry under the 'layout_component' type."""
    component_name: str

    def __call__(self, properties: typing.Dict[str, typing.Any]) -> typing.Any: ...


class ComponentRegistry:
    """Map component names to constructors.

    Each renderer can be given its own registry so that independently rendered layouts do not share component
    definitions.
    """

    def __init__(self, components: typing.Optional[typing.Mapping[str, ComponentConstructor]] = None) -> None:
        self.__constructors: typing.Dict[str, ComponentConstructor] = dict(components or dict())

    def register(self, name: str, constructor: ComponentConstructor) -> None:
        assert callable(constructor)
        self.__constructors[name] = constructor

    def unregister(self, name: str) -> None:
        self.__constructors.pop(name, None)

    def lookup(self, name: str) -> typing.Optional[ComponentConstructor]:
        return self.__constructors.get(name)

    @property
    def names(self) -> typing.List[str]:
        return sorted(self.__constructors.keys())


class SharedComponentRegistry:
    """Look up components registered with the process-wide component registry.

    Plug-ins register a factory with a `component_name` attribute under the 'layout_component' type; the first
    factory with a matching name wins. An optional fallback lookup is consulted afterwards.
    """

    component_type = "layout_component"

    def __init__(self, fallback: typing.Optional[ComponentLookup] = None) -> None:
        self.__fallback = fallback

    @classmethod
    def register_factory(cls, factory: LayoutComponentFactory) -> None:
        Registry.register_component(factory, {cls.component_type})

    @classmethod
    def unregister_factory(cls, factory: LayoutComponentFactory) -> None:
        Registry.unregister_component(factory)

    def lookup(self, name: str) -> typing.Optional[ComponentConstructor]:
        for factory in Registry.get_components_by_type(self.component_type):
            if getattr(factory, "component_name", None) == name:
                return typing.cast(ComponentConstructor, factory)
        if self.__fallback:
            return self.__fallback.lookup(name)
        return None
