from __future__ import annotations

# standard libraries
import asyncio
import dataclasses
import logging
import typing

# third party libraries
import httpx

# local libraries
from nion.layout import Cascade
from nion.layout import ComponentRegistry
from nion.layout import DataSource
from nion.layout import Description
from nion.layout import EventDispatch
from nion.layout import Expression
from nion.layout import InstanceRegistry
from nion.layout import Settings
from nion.utils import Binding

LayoutError = Description.LayoutError

_FinishesListType = typing.List[typing.Callable[[], None]]


class _CloseFn:
    def __init__(self, fn: typing.Callable[[], None]) -> None:
        self.__fn: typing.Optional[typing.Callable[[], None]] = fn

    def close(self) -> None:
        if self.__fn:
            fn, self.__fn = self.__fn, None
            fn()


class Closer:
    """Collect closeable items and close them in reverse order of addition.

    A closer is created for each rendered layout. Everything the renderer creates for the layout (component
    instances, data sources, listeners, registry entries) is pushed here so that tearing down the layout releases
    all of it.
    """
    def __init__(self) -> None:
        self.__closeables: typing.List[typing.Any] = list()

    def push_closeable(self, closeable: typing.Any) -> None:
        assert closeable not in self.__closeables
        self.__closeables.append(closeable)

    def push_close_fn(self, fn: typing.Callable[[], None]) -> None:
        self.__closeables.append(_CloseFn(fn))

    def close(self) -> None:
        closeables, self.__closeables = self.__closeables, list()
        for closeable in reversed(closeables):
            if callable(getattr(closeable, "close", None)):
                closeable.close()


@dataclasses.dataclass
class RenderedComponent:
    node: Description.ComponentNode
    instance: typing.Any
    key: typing.Any = None
    data_source: typing.Optional[DataSource.DataSourceResolver] = None

    @property
    def identifier(self) -> typing.Optional[str]:
        return self.node.identifier


@dataclasses.dataclass
class RenderedContainer:
    node: Description.ContainerNode
    children: typing.List[RenderedItem] = dataclasses.field(default_factory=list)

    @property
    def orientation(self) -> Description.Orientation:
        return self.node.orientation

    @property
    def grid_template(self) -> typing.Optional[Description.GridTemplate]:
        return self.node.grid_template

    @property
    def style(self) -> typing.Dict[str, typing.Any]:
        return self.node.style

    @property
    def css_classes(self) -> typing.List[str]:
        return self.node.css_classes


RenderedItem = typing.Union[RenderedContainer, RenderedComponent]


class RenderedTree:
    """The live result of rendering a layout.

    Closing the tree closes every component instance and data source created for it and removes its identifiers
    from the instance registry.
    """

    def __init__(self, registry: InstanceRegistry.InstanceRegistry) -> None:
        self.registry = registry
        self.root: typing.Optional[RenderedItem] = None
        self.components: typing.List[RenderedComponent] = list()
        self._closer = Closer()
        self.__event_queues: typing.List[EventDispatch.NodeEventQueue] = list()
        self.__closed = False

    def close(self) -> None:
        if not self.__closed:
            self.__closed = True
            self._closer.close()
            self.__event_queues = list()
            self.components = list()
            self.root = None

    @property
    def is_closed(self) -> bool:
        return self.__closed

    def _add_event_queue(self, event_queue: EventDispatch.NodeEventQueue) -> None:
        self.__event_queues.append(event_queue)
        self._closer.push_closeable(event_queue)

    def get_instance(self, identifier: str) -> typing.Any:
        return self.registry.get_instance(identifier)

    def get_component(self, identifier: str) -> typing.Optional[RenderedComponent]:
        for component in self.components:
            if component.identifier == identifier:
                return component
        return None

    def get_data_source(self, identifier: str) -> typing.Optional[DataSource.DataSourceResolver]:
        component = self.get_component(identifier)
        return component.data_source if component else None

    def refresh(self, identifier: str) -> None:
        """Fetch the data of a component again."""
        data_source = self.get_data_source(identifier)
        if data_source:
            data_source.refresh()
        else:
            logging.warning("Component '%s' has no data source to refresh.", identifier)

    async def flush(self) -> None:
        """Wait until queued events and in-flight fetches are finished, including the fetches they trigger."""
        while not self.__closed:
            event_queues = [q for q in self.__event_queues if q.is_busy]
            data_sources = [c.data_source for c in self.components if c.data_source and c.data_source.is_loading]
            if not event_queues and not data_sources:
                break
            for event_queue in event_queues:
                await event_queue.join()
            for data_source in data_sources:
                await data_source.wait()


def connect_data(instance: typing.Any, data_source: DataSource.DataSourceResolver, closer: Closer) -> None:
    """Feed the data source into the component.

    A component that can bind its data gets a binding to the data model. Otherwise the data is assigned to its
    `data` attribute whenever it changes. A component with a `data_state` attribute also follows the fetch state.
    """
    bind_data = getattr(instance, "bind_data", None)
    if callable(bind_data):
        bind_data(Binding.PropertyBinding(data_source.data_model, "value"))
    else:
        data_model = data_source.data_model

        def data_changed(property_name: str) -> None:
            if property_name == "value":
                setattr(instance, "data", data_model.value)

        closer.push_closeable(data_model.property_changed_event.listen(data_changed))
        setattr(instance, "data", data_model.value)
    if hasattr(instance, "data_state"):
        def state_changed(state: DataSource.FetchState) -> None:
            setattr(instance, "data_state", state)

        closer.push_closeable(data_source.state_changed_event.listen(state_changed))
        setattr(instance, "data_state", data_source.state)


class LayoutRenderer:
    """Render layouts into live component instances.

    The renderer owns the instance registry, the expression resolver, the event dispatcher and the cascade
    controller shared by everything it renders. Rendering a new layout closes the previous one first, so only one
    rendered tree is live per renderer. Use separate renderers for independent layouts.
    """

    def __init__(self, components: ComponentRegistry.ComponentLookup, event_loop: asyncio.AbstractEventLoop, *,
                 settings: typing.Optional[Settings.RenderSettings] = None,
                 http_client: typing.Optional[httpx.AsyncClient] = None) -> None:
        self.__components = components
        self.__event_loop = event_loop
        self.__settings = settings or Settings.RenderSettings()
        self.__http_client = http_client
        self.registry = InstanceRegistry.InstanceRegistry()
        self.resolver = Expression.ExpressionResolver(self.registry)
        self.dispatcher = EventDispatch.EventDispatcher(self.resolver)
        self.cascades = Cascade.CascadeController(self.resolver, self.__settings)
        self.__rendered_tree: typing.Optional[RenderedTree] = None

    def close(self) -> None:
        if self.__rendered_tree:
            self.__rendered_tree.close()
            self.__rendered_tree = None
        self.dispatcher.close()
        self.cascades.close()

    @property
    def rendered_tree(self) -> typing.Optional[RenderedTree]:
        return self.__rendered_tree

    def render(self, tree: typing.Union[Description.LayoutDescription, Description.LayoutNode],
               handlers: EventDispatch.HandlerTable) -> RenderedTree:
        """Render the layout, replacing the layout rendered before.

        Raises LayoutError (DuplicateIdentifierError, CascadeCycleError) if the layout is rejected; in that case
        nothing is built and the previously rendered layout stays live.
        """
        root = Description.parse_layout(tree)
        skipped_cascades = self.__validate(root)
        if self.__rendered_tree:
            self.__rendered_tree.close()
            self.__rendered_tree = None
        rendered_tree = RenderedTree(self.registry)
        finishes: _FinishesListType = list()
        try:
            rendered_tree.root = self.__construct(root, handlers, rendered_tree, finishes, skipped_cascades)
            # event queues are connected after the whole tree exists so that they see cascades declared by later nodes.
            for finish in finishes:
                finish()
        except Exception:
            rendered_tree.close()
            raise
        self.__rendered_tree = rendered_tree
        return rendered_tree

    def __validate(self, root: Description.LayoutNode) -> typing.Set[int]:
        identifiers: typing.Set[str] = set()
        component_nodes = list(Description.iter_components(root))
        for node in component_nodes:
            if node.identifier is not None:
                if node.identifier in identifiers:
                    raise InstanceRegistry.DuplicateIdentifierError(node.identifier)
                identifiers.add(node.identifier)
        Cascade.validate_cascade_graph(component_nodes)
        skipped_cascades: typing.Set[int] = set()
        for node in component_nodes:
            if node.cascade and node.cascade.parent_id not in identifiers:
                logging.warning("Cascade parent '%s' not found; cascade for '%s' ignored.", node.cascade.parent_id, node.identifier or node.component_name)
                skipped_cascades.add(id(node))
        return skipped_cascades

    def __construct(self, node: Description.LayoutNode, handlers: EventDispatch.HandlerTable,
                    rendered_tree: RenderedTree, finishes: _FinishesListType,
                    skipped_cascades: typing.Set[int]) -> typing.Optional[RenderedItem]:
        if isinstance(node, Description.ContainerNode):
            rendered_container = RenderedContainer(node)
            for child in node.children:
                rendered_child = self.__construct(child, handlers, rendered_tree, finishes, skipped_cascades)
                if rendered_child is not None:
                    rendered_container.children.append(rendered_child)
            return rendered_container
        return self.__construct_component(node, handlers, rendered_tree, finishes, id(node) in skipped_cascades)

    def __construct_component(self, node: Description.ComponentNode, handlers: EventDispatch.HandlerTable,
                              rendered_tree: RenderedTree, finishes: _FinishesListType,
                              skip_cascade: bool) -> typing.Optional[RenderedComponent]:
        constructor = self.__components.lookup(node.component_name)
        if not constructor:
            logging.warning("Component '%s' not found in registry.", node.component_name)
            return None
        properties = self.resolver.resolve_structure_now(node.properties)
        try:
            instance = constructor(properties)
        except Exception as e:
            logging.warning("Component '%s' could not be created: %s", node.component_name, e)
            return None
        # everything wired for this node goes on its own closer so a failure unwinds just this node.
        closer = Closer()
        if callable(getattr(instance, "close", None)):
            closer.push_closeable(instance)
        try:
            rendered_component = self.__connect_component(node, instance, handlers, closer, skip_cascade)
        except Exception as e:
            logging.warning("Component '%s' could not be connected: %s", node.identifier or node.component_name, e)
            closer.close()
            return None
        rendered_tree._closer.push_closeable(closer)
        key = rendered_component.key
        identifier = node.identifier
        dispatcher = self.dispatcher

        def finish_events() -> None:
            if dispatcher.event_names(key) or (identifier and self.cascades.parent_event_names(identifier)):
                rendered_tree._add_event_queue(EventDispatch.NodeEventQueue(key, identifier, instance, self.__event_loop, dispatcher, self.cascades))

        finishes.append(finish_events)
        rendered_tree.components.append(rendered_component)
        return rendered_component

    def __connect_component(self, node: Description.ComponentNode, instance: typing.Any,
                            handlers: EventDispatch.HandlerTable, closer: Closer,
                            skip_cascade: bool) -> RenderedComponent:
        registry = self.registry
        identifier = node.identifier
        if identifier is not None:
            registry.register(identifier, instance)
            closer.push_close_fn(lambda: registry.unregister(identifier))
        key: typing.Any = identifier if identifier is not None else object()
        rendered_component = RenderedComponent(node, instance, key=key)
        if node.data_spec or node.cascade:
            data_source = DataSource.DataSourceResolver(identifier, node.data_spec, self.resolver, self.__event_loop,
                                                        settings=self.__settings, http_client=self.__http_client)
            closer.push_closeable(data_source)
            connect_data(instance, data_source, closer)
            rendered_component.data_source = data_source
            if node.cascade and not skip_cascade:
                cascades = self.cascades
                cascades.subscribe(key, node.cascade, data_source)
                closer.push_close_fn(lambda: cascades.unsubscribe(key))
            data_source.start()
        dispatcher = self.dispatcher
        if node.events:
            closer.push_close_fn(lambda: dispatcher.unbind(key))
        for event_name, event_binding in node.events.items():
            dispatcher.bind(key, event_name, event_binding, handlers)
        return rendered_component
