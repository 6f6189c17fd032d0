"""
Cascades reload a dependent component's data when a parent component fires an event.

The dependent component names its parent by identifier. When the parent fires the named event, the key field is
read from the event payload, or from the parent's current selection when the payload does not carry it, and
substituted into the endpoint template. No key means no data: the dependent component is reset instead of fetched.
"""

from __future__ import annotations

# standard libraries
import logging
import typing
import urllib.parse

# third party libraries
# None

# local libraries
from nion.layout import DataSource
from nion.layout import Description
from nion.layout import Expression
from nion.layout import Settings


class CascadeCycleError(Description.LayoutError):
    def __init__(self, cycle: typing.Sequence[str]) -> None:
        super().__init__("Cascade cycle: " + " -> ".join(cycle))
        self.cycle = list(cycle)


def validate_cascade_graph(nodes: typing.Iterable[Description.ComponentNode]) -> None:
    """Raise CascadeCycleError if any component is, directly or transitively, its own cascade parent."""
    parent_of: typing.Dict[str, str] = dict()
    for node in nodes:
        if node.cascade and node.identifier:
            parent_of[node.identifier] = node.cascade.parent_id
    checked: typing.Set[str] = set()
    for start in parent_of:
        path: typing.List[str] = list()
        identifier: typing.Optional[str] = start
        while identifier is not None and identifier not in checked:
            if identifier in path:
                raise CascadeCycleError(path[path.index(identifier):] + [identifier])
            path.append(identifier)
            identifier = parent_of.get(identifier)
        checked.update(path)


_missing = object()


def read_key(payload: typing.Any, key_field: str) -> typing.Any:
    """Return the key field from a mapping or object payload, or the missing marker if it is not there."""
    if isinstance(payload, typing.Mapping):
        return payload.get(key_field, _missing)
    if payload is not None and hasattr(payload, key_field):
        return getattr(payload, key_field)
    return _missing


def substitute_endpoint(cascade: Description.CascadeSpec, value: typing.Any, quote: bool = True) -> str:
    text = str(value)
    if quote:
        text = urllib.parse.quote(text, safe="")
    return cascade.endpoint_template.replace(cascade.placeholder, text)


class CascadeSubscription:

    def __init__(self, key: typing.Any, cascade: Description.CascadeSpec, data_source: DataSource.DataSourceResolver) -> None:
        self.key = key
        self.cascade = cascade
        self.data_source = data_source

    def matches(self, parent_id: str, event_name: str) -> bool:
        return self.cascade.parent_id == parent_id and self.cascade.parent_event_name == event_name


class CascadeController:
    """Hold at most one cascade subscription per dependent component."""

    def __init__(self, resolver: Expression.ExpressionResolver, settings: typing.Optional[Settings.RenderSettings] = None) -> None:
        self.__resolver = resolver
        self.__settings = settings or Settings.RenderSettings()
        self.__subscriptions: typing.Dict[typing.Any, CascadeSubscription] = dict()

    def close(self) -> None:
        self.__subscriptions = dict()

    @property
    def subscriptions(self) -> typing.List[CascadeSubscription]:
        return list(self.__subscriptions.values())

    def subscribe(self, key: typing.Any, cascade: Description.CascadeSpec, data_source: DataSource.DataSourceResolver) -> CascadeSubscription:
        # registering again for the same dependent replaces the old subscription.
        subscription = CascadeSubscription(key, cascade, data_source)
        self.__subscriptions[key] = subscription
        return subscription

    def unsubscribe(self, key: typing.Any) -> None:
        self.__subscriptions.pop(key, None)

    def is_parent_event(self, parent_id: str, event_name: str) -> bool:
        return any(s.matches(parent_id, event_name) for s in self.__subscriptions.values())

    def parent_event_names(self, parent_id: str) -> typing.Set[str]:
        return {s.cascade.parent_event_name for s in self.__subscriptions.values() if s.cascade.parent_id == parent_id}

    async def handle_parent_event(self, parent_id: str, event_name: str, payload: typing.Any) -> None:
        for subscription in list(self.__subscriptions.values()):
            if subscription.matches(parent_id, event_name):
                await self.__fire(subscription, payload)

    async def __read_selection(self, cascade: Description.CascadeSpec) -> typing.Any:
        method = cascade.selection_method or self.__settings.selection_method
        selection = await self.__resolver.resolve(Expression.Expression(f"${cascade.parent_id}.{method}()", cascade.parent_id, method))
        if isinstance(selection, (list, tuple)):
            selection = selection[0] if selection else None
        value = read_key(selection, cascade.parent_key_field)
        return None if value is _missing else value

    async def __fire(self, subscription: CascadeSubscription, payload: typing.Any) -> None:
        cascade = subscription.cascade
        value = read_key(payload, cascade.parent_key_field)
        if value is _missing:
            value = await self.__read_selection(cascade)
        if value is None:
            logging.debug("Cascade from '%s' has no '%s'; clearing dependent data.", cascade.parent_id, cascade.parent_key_field)
            subscription.data_source.reset()
            return
        subscription.data_source.trigger(substitute_endpoint(cascade, value, self.__settings.placeholder_quote))
