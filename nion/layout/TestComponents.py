"""
Stand-in components for tests.

These components record what the renderer does to them and fire events on request. They follow the component
contract: a constructor taking the properties, events as `<name>_event` attributes, a `capabilities` list, and
a `data` attribute fed by the data source.
"""

from __future__ import annotations

# standard libraries
import asyncio
import contextlib
import typing

# third party libraries
# None

# local libraries
from nion.layout import ComponentRegistry
from nion.layout import DataSource
from nion.utils import Binding
from nion.utils import Event


class Component:
    capabilities: typing.Sequence[str] = ("option",)

    def __init__(self, properties: typing.Optional[typing.Mapping[str, typing.Any]] = None) -> None:
        self.properties: typing.Dict[str, typing.Any] = dict(properties or dict())
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def option(self, name: str) -> typing.Any:
        return self.properties.get(name)


class Button(Component):

    def __init__(self, properties: typing.Optional[typing.Mapping[str, typing.Any]] = None) -> None:
        super().__init__(properties)
        self.click_event = Event.Event()

    def click(self, native_event: typing.Any = None) -> None:
        self.click_event.fire(native_event if native_event is not None else {"component": self})


class TextBox(Component):
    capabilities = ("option", "validate")

    def __init__(self, properties: typing.Optional[typing.Mapping[str, typing.Any]] = None) -> None:
        super().__init__(properties)
        self.value = self.properties.get("value", str())
        self.value_changed_event = Event.Event()

    def validate(self) -> bool:
        return bool(self.value)

    def set_value(self, value: str) -> None:
        self.value = value
        self.value_changed_event.fire({"value": value})


class DataGrid(Component):
    capabilities = ("option", "getSelectedRowsData", "getSelectedRowKeys", "totalCount", "loadSummary", "fail")

    def __init__(self, properties: typing.Optional[typing.Mapping[str, typing.Any]] = None) -> None:
        super().__init__(properties)
        self.data: typing.List[typing.Any] = list()
        self.data_state: typing.Optional[DataSource.FetchState] = None
        self.key_field = self.properties.get("keyExpr", "id")
        self.selected_rows: typing.List[typing.Any] = list()
        self.selection_changed_event = Event.Event()
        self.row_click_event = Event.Event()

    def getSelectedRowsData(self) -> typing.List[typing.Any]:
        return list(self.selected_rows)

    def getSelectedRowKeys(self) -> typing.List[typing.Any]:
        return [row.get(self.key_field) for row in self.selected_rows]

    def totalCount(self) -> int:
        return len(self.data)

    async def loadSummary(self) -> typing.Dict[str, int]:
        await asyncio.sleep(0)
        return {"count": len(self.data)}

    def fail(self) -> None:
        raise RuntimeError("grid failure")

    def refresh(self) -> None:
        # not a capability; expressions may not call it.
        pass

    def select_rows(self, rows: typing.Sequence[typing.Any], payload: typing.Any = None) -> None:
        self.selected_rows = list(rows)
        self.selection_changed_event.fire(payload if payload is not None else {"selectedRowsData": list(rows)})


class Chart(Component):
    """A component that binds its data instead of having it assigned."""
    capabilities = ()

    def __init__(self, properties: typing.Optional[typing.Mapping[str, typing.Any]] = None) -> None:
        super().__init__(properties)
        self.data_binding: typing.Optional[Binding.Binding] = None

    def close(self) -> None:
        if self.data_binding:
            self.data_binding.close()
            self.data_binding = None
        super().close()

    def bind_data(self, binding: Binding.Binding) -> None:
        self.data_binding = binding

    @property
    def data(self) -> typing.Any:
        return self.data_binding.get_target_value() if self.data_binding else None


def create_component_registry() -> ComponentRegistry.ComponentRegistry:
    return ComponentRegistry.ComponentRegistry({
        "Button": Button,
        "TextBox": TextBox,
        "DataGrid": DataGrid,
        "Chart": Chart,
    })


@contextlib.contextmanager
def event_loop_context() -> typing.Iterator[asyncio.AbstractEventLoop]:
    event_loop = asyncio.new_event_loop()
    asyncio.set_event_loop(event_loop)
    try:
        yield event_loop
    finally:
        pending = asyncio.all_tasks(event_loop)
        for task in pending:
            task.cancel()
        if pending:
            event_loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        event_loop.close()
        asyncio.set_event_loop(None)
