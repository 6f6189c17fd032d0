from __future__ import annotations

# standard libraries
import dataclasses
import enum
import json
import logging
import pathlib
import typing

# third party libraries
# None

# local libraries
from nion.layout import Expression


LayoutDescription = typing.Mapping[str, typing.Any]
LayoutDescriptionResult = typing.Dict[str, typing.Any]
LayoutIdentifier = str
HandlerName = str


class LayoutError(Exception):
    """Raised when a layout cannot be built."""
    pass


class Orientation(enum.Enum):
    Vertical = "vertical"
    Horizontal = "horizontal"
    Grid = "grid"


@dataclasses.dataclass(frozen=True)
class GridTemplate:
    columns: typing.Optional[str] = None
    rows: typing.Optional[str] = None
    gap: typing.Optional[str] = None


@dataclasses.dataclass
class EventBinding:
    handler_name: HandlerName
    args: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)


@dataclasses.dataclass
class InlineData:
    records: typing.List[typing.Any]


@dataclasses.dataclass
class RemoteData:
    endpoint: str
    method: typing.Optional[str] = None
    headers: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)
    query_parameters: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)
    body: typing.Any = None

    @property
    def effective_method(self) -> str:
        if self.method:
            return self.method.upper()
        return "GET" if self.body is None else "POST"


DataSpec = typing.Union[InlineData, RemoteData]


@dataclasses.dataclass
class CascadeSpec:
    parent_id: LayoutIdentifier
    parent_event_name: str
    endpoint_template: str
    parent_key_field: str
    selection_method: typing.Optional[str] = None

    @property
    def placeholder(self) -> str:
        return "{" + self.parent_key_field + "}"


@dataclasses.dataclass
class ContainerNode:
    orientation: Orientation = Orientation.Vertical
    grid_template: typing.Optional[GridTemplate] = None
    children: typing.List[LayoutNode] = dataclasses.field(default_factory=list)
    style: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)
    css_classes: typing.List[str] = dataclasses.field(default_factory=list)


@dataclasses.dataclass
class ComponentNode:
    component_name: str
    identifier: typing.Optional[LayoutIdentifier] = None
    properties: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)
    events: typing.Dict[str, EventBinding] = dataclasses.field(default_factory=dict)
    data_spec: typing.Optional[DataSpec] = None
    cascade: typing.Optional[CascadeSpec] = None
    style: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)
    css_classes: typing.List[str] = dataclasses.field(default_factory=list)


LayoutNode = typing.Union[ContainerNode, ComponentNode]


class DeclarativeLayout:
    """Build layout descriptions.

    The descriptions are plain dicts in the same format as a layout file, so they can be written out as JSON or
    passed straight to a renderer.
    """

    def __init__(self) -> None:
        pass

    def __process_common_properties(self, d: typing.MutableMapping[str, typing.Any], style: typing.Optional[typing.Mapping[str, typing.Any]],
                                    css_class: typing.Optional[typing.Union[str, typing.Sequence[str]]]) -> None:
        if style:
            d["style"] = dict(style)
        if css_class:
            d["class"] = css_class if isinstance(css_class, str) else " ".join(css_class)

    def create_container(self, *children: LayoutDescription, layout: str = "vertical",
                         grid_template: typing.Optional[typing.Mapping[str, str]] = None,
                         style: typing.Optional[typing.Mapping[str, typing.Any]] = None,
                         css_class: typing.Optional[typing.Union[str, typing.Sequence[str]]] = None) -> LayoutDescriptionResult:
        """Create a container description with children.

        Args:
            children: child descriptions, in display order

        Keyword Args:
            layout: "vertical", "horizontal" or "grid"
            grid_template: mapping with optional "columns", "rows" and "gap" track specs (grid layout only)
            style: style mapping passed through to the container
            css_class: class name string or list of class names

        Returns:
            a description of the container
        """
        d: LayoutDescriptionResult = {"type": "container", "layout": layout}
        if grid_template:
            d["gridTemplate"] = dict(grid_template)
        if len(children) > 0:
            d_children = d.setdefault("children", list())
            for child in children:
                d_children.append(child)
        self.__process_common_properties(d, style, css_class)
        return d

    def create_column(self, *children: LayoutDescription, **kwargs: typing.Any) -> LayoutDescriptionResult:
        return self.create_container(*children, layout="vertical", **kwargs)

    def create_row(self, *children: LayoutDescription, **kwargs: typing.Any) -> LayoutDescriptionResult:
        return self.create_container(*children, layout="horizontal", **kwargs)

    def create_grid(self, *children: LayoutDescription, columns: typing.Optional[str] = None,
                    rows: typing.Optional[str] = None, gap: typing.Optional[str] = None,
                    **kwargs: typing.Any) -> LayoutDescriptionResult:
        grid_template = {k: v for k, v in (("columns", columns), ("rows", rows), ("gap", gap)) if v is not None}
        return self.create_container(*children, layout="grid", grid_template=grid_template, **kwargs)

    def create_component(self, component: str, *, id: typing.Optional[LayoutIdentifier] = None,
                         props: typing.Optional[typing.Mapping[str, typing.Any]] = None,
                         events: typing.Optional[typing.Mapping[str, typing.Any]] = None,
                         data_source: typing.Any = None,
                         cascade: typing.Optional[LayoutDescription] = None,
                         style: typing.Optional[typing.Mapping[str, typing.Any]] = None,
                         css_class: typing.Optional[typing.Union[str, typing.Sequence[str]]] = None) -> LayoutDescriptionResult:
        """Create a component description.

        Args:
            component: name of the component in the component registry

        Keyword Args:
            id: identifier used by expressions and cascades to find the component instance
            props: initial properties passed to the component constructor
            events: mapping of event name to handler name or event description (see `create_event`)
            data_source: a list of records or a remote data description (see `create_remote_data`)
            cascade: cascade description (see `create_cascade`)
            style: style mapping passed through to the component
            css_class: class name string or list of class names

        Returns:
            a description of the component
        """
        d: LayoutDescriptionResult = {"type": "component", "component": component}
        if id is not None:
            d["id"] = id
        if props:
            d["props"] = dict(props)
        if events:
            d["events"] = dict(events)
        if data_source is not None:
            d["dataSource"] = data_source
        if cascade:
            d["cascade"] = dict(cascade)
        self.__process_common_properties(d, style, css_class)
        return d

    def create_event(self, handler: HandlerName, **args: typing.Any) -> LayoutDescriptionResult:
        d: LayoutDescriptionResult = {"handler": handler}
        if args:
            d["args"] = args
        return d

    def create_remote_data(self, endpoint: str, *, method: typing.Optional[str] = None,
                           headers: typing.Optional[typing.Mapping[str, typing.Any]] = None,
                           params: typing.Optional[typing.Mapping[str, typing.Any]] = None,
                           body: typing.Any = None) -> LayoutDescriptionResult:
        d: LayoutDescriptionResult = {"endpoint": endpoint}
        if method:
            d["method"] = method
        if headers:
            d["headers"] = dict(headers)
        if params:
            d["params"] = dict(params)
        if body is not None:
            d["body"] = body
        return d

    def create_cascade(self, parent: LayoutIdentifier, event: str, endpoint_template: str, key_field: str, *,
                       selection_method: typing.Optional[str] = None) -> LayoutDescriptionResult:
        d: LayoutDescriptionResult = {
            "parentComponent": parent,
            "parentEvent": event,
            "endpointTemplate": endpoint_template,
            "parentKeyField": key_field,
        }
        if selection_method:
            d["selectionMethod"] = selection_method
        return d


def _get(d: LayoutDescription, *keys: str, default: typing.Any = None) -> typing.Any:
    for key in keys:
        if key in d:
            return d[key]
    return default


def _parse_css_classes(v: typing.Any) -> typing.List[str]:
    if not v:
        return list()
    if isinstance(v, str):
        return v.split()
    return [str(c) for c in v]


def _parse_event_binding(event_name: str, v: typing.Any) -> typing.Optional[EventBinding]:
    if isinstance(v, str):
        return EventBinding(v)
    if isinstance(v, typing.Mapping) and isinstance(v.get("handler"), str):
        args = v.get("args") or dict()
        return EventBinding(v["handler"], {str(k): Expression.tag_value(a) for k, a in args.items()})
    logging.warning("Event '%s' has no handler name; binding ignored.", event_name)
    return None


def _is_remote_description(v: typing.Any) -> bool:
    return isinstance(v, typing.Mapping) and ("endpoint" in v or "api" in v)


def _parse_data_spec(v: typing.Any) -> typing.Optional[DataSpec]:
    if v is None:
        return None
    if isinstance(v, (list, tuple)):
        return InlineData(list(v))
    if _is_remote_description(v):
        endpoint = _get(v, "endpoint", "api")
        headers = _get(v, "headers", default=dict()) or dict()
        query_parameters = _get(v, "params", "queryParameters", default=dict()) or dict()
        return RemoteData(str(endpoint), v.get("method"), Expression.tag_value(dict(headers)),
                          Expression.tag_value(dict(query_parameters)), Expression.tag_value(v.get("body")))
    raise LayoutError(f"Data source must be a list of records or a remote description, not {v!r}.")


def _parse_cascade(v: LayoutDescription) -> CascadeSpec:
    parent_id = _get(v, "parentComponent", "parentId")
    parent_event_name = _get(v, "parentEvent", "parentEventName")
    endpoint_template = v.get("endpointTemplate")
    parent_key_field = v.get("parentKeyField")
    if not (parent_id and parent_event_name and endpoint_template and parent_key_field):
        raise LayoutError(f"Cascade description is incomplete: {dict(v)!r}.")
    return CascadeSpec(str(parent_id), str(parent_event_name), str(endpoint_template), str(parent_key_field),
                       v.get("selectionMethod"))


def _parse_component(d: LayoutDescription) -> ComponentNode:
    component_name = d.get("component")
    if not component_name:
        raise LayoutError("Component description has no component name.")
    properties = dict(d.get("props") or dict())
    data_spec = _parse_data_spec(_get(d, "dataSource", "dataSpec"))
    # a remote description given as a property is the node's data source, not a property.
    if data_spec is None and _is_remote_description(properties.get("dataSource")):
        data_spec = _parse_data_spec(properties.pop("dataSource"))
    events: typing.Dict[str, EventBinding] = dict()
    for event_name, v in (d.get("events") or dict()).items():
        event_binding = _parse_event_binding(event_name, v)
        if event_binding:
            events[event_name] = event_binding
    cascade_d = d.get("cascade")
    identifier = d.get("id")
    return ComponentNode(component_name=str(component_name),
                         identifier=str(identifier) if identifier is not None else None,
                         properties=Expression.tag_value(properties),
                         events=events,
                         data_spec=data_spec,
                         cascade=_parse_cascade(cascade_d) if cascade_d else None,
                         style=dict(d.get("style") or dict()),
                         css_classes=_parse_css_classes(d.get("class")))


def _parse_container(d: LayoutDescription) -> ContainerNode:
    try:
        orientation = Orientation(d.get("layout") or "vertical")
    except ValueError as e:
        raise LayoutError(f"Unknown container layout '{d.get('layout')}'.") from e
    grid_template_d = d.get("gridTemplate")
    grid_template = None
    if grid_template_d:
        grid_template = GridTemplate(grid_template_d.get("columns"), grid_template_d.get("rows"), grid_template_d.get("gap"))
    return ContainerNode(orientation=orientation,
                         grid_template=grid_template,
                         children=[parse_layout(child) for child in d.get("children") or list()],
                         style=dict(d.get("style") or dict()),
                         css_classes=_parse_css_classes(d.get("class")))


def parse_layout(d: typing.Union[LayoutDescription, LayoutNode]) -> LayoutNode:
    """Parse a layout description into layout nodes.

    Expression strings in properties, event arguments and remote data descriptions are parsed here; malformed
    expressions are reported and will resolve to None.
    """
    if isinstance(d, (ContainerNode, ComponentNode)):
        return d
    d_type = d.get("type")
    if d_type == "container":
        return _parse_container(d)
    elif d_type == "component":
        return _parse_component(d)
    raise LayoutError(f"Layout node type {d_type} cannot be constructed.")


def read_layout_file(path: typing.Union[str, pathlib.Path]) -> LayoutNode:
    with open(path, "r", encoding="utf-8") as f:
        return parse_layout(json.load(f))


def iter_nodes(node: LayoutNode) -> typing.Iterator[LayoutNode]:
    """Yield the node and its descendants in document order."""
    yield node
    if isinstance(node, ContainerNode):
        for child in node.children:
            yield from iter_nodes(child)


def iter_components(node: LayoutNode) -> typing.Iterator[ComponentNode]:
    for n in iter_nodes(node):
        if isinstance(n, ComponentNode):
            yield n
