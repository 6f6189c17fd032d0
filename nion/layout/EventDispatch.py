from __future__ import annotations

# standard libraries
import asyncio
import functools
import inspect
import logging
import re
import typing

# third party libraries
# None

# local libraries
from nion.layout import Description
from nion.layout import Expression
from nion.utils import Event

if typing.TYPE_CHECKING:
    from nion.layout import Cascade


HandlerFn = typing.Callable[[typing.Any, typing.Dict[str, typing.Any]], typing.Any]
HandlerTable = typing.Mapping[str, HandlerFn]

_camel_re = re.compile(r"(?<=[a-z0-9])([A-Z])")


def event_attribute_name(event_name: str) -> str:
    """Return the attribute holding the event on a component, e.g. 'selection-changed' -> 'selection_changed_event'."""
    snake = _camel_re.sub(r"_\1", event_name).replace("-", "_").lower()
    return snake + "_event"


def get_event(instance: typing.Any, event_name: str) -> typing.Optional[Event.Event]:
    event = getattr(instance, event_attribute_name(event_name), None)
    return event if isinstance(event, Event.Event) else None


class EventDispatcher:
    """Invoke host handlers for component events with resolved arguments.

    The handler table is supplied with each binding; it is never looked up globally.
    """

    def __init__(self, resolver: Expression.ExpressionResolver) -> None:
        self.__resolver = resolver
        self.__bindings: typing.Dict[typing.Any, typing.Dict[str, typing.Tuple[Description.EventBinding, HandlerTable]]] = dict()

    def close(self) -> None:
        self.__bindings = dict()

    def bind(self, key: typing.Any, event_name: str, binding: Description.EventBinding, handlers: HandlerTable) -> None:
        self.__bindings.setdefault(key, dict())[event_name] = (binding, handlers)

    def unbind(self, key: typing.Any) -> None:
        self.__bindings.pop(key, None)

    def event_names(self, key: typing.Any) -> typing.List[str]:
        return list(self.__bindings.get(key, dict()).keys())

    async def dispatch(self, key: typing.Any, event_name: str, native_event: typing.Any) -> None:
        bound = self.__bindings.get(key, dict()).get(event_name)
        if not bound:
            return
        binding, handlers = bound
        handler = handlers.get(binding.handler_name)
        if not callable(handler):
            logging.warning("Handler '%s' for event '%s' not found.", binding.handler_name, event_name)
            return
        resolved_args = await self.__resolver.resolve_arguments(binding.args)
        result = handler(native_event, resolved_args)
        if inspect.isawaitable(result):
            await result


class NodeEventQueue:
    """Process the events of one component in the order they fire.

    Each event runs its handler binding to completion, then any cascades that listen to the same event, before the
    next event of the component is processed. Exceptions raised by host handlers are left on the event's task.
    """

    def __init__(self, key: typing.Any, identifier: typing.Optional[str], instance: typing.Any,
                 event_loop: asyncio.AbstractEventLoop, dispatcher: EventDispatcher,
                 cascades: typing.Optional[Cascade.CascadeController] = None) -> None:
        self.key = key
        self.identifier = identifier
        self.__event_loop = event_loop
        self.__dispatcher = dispatcher
        self.__cascades = cascades
        self.__listeners: typing.List[Event.EventListener] = list()
        self.__last_task: typing.Optional[asyncio.Task[None]] = None
        self.__tasks: typing.Set[asyncio.Task[None]] = set()
        event_names = list(dispatcher.event_names(key))
        if cascades and identifier:
            event_names += [n for n in sorted(cascades.parent_event_names(identifier)) if n not in event_names]
        for event_name in event_names:
            event = get_event(instance, event_name)
            if event:
                self.__listeners.append(event.listen(functools.partial(self.__event_fired, event_name)))
            else:
                logging.warning("Component '%s' has no event '%s'.", identifier or type(instance).__name__, event_name)

    def close(self) -> None:
        for listener in self.__listeners:
            listener.close()
        self.__listeners = list()
        for task in self.__tasks:
            task.cancel()
        self.__tasks = set()
        self.__last_task = None

    @property
    def is_busy(self) -> bool:
        return any(not task.done() for task in self.__tasks)

    def __event_fired(self, event_name: str, *args: typing.Any, **kwargs: typing.Any) -> None:
        native_event = args[0] if args else (kwargs or None)
        task = self.__event_loop.create_task(self.__process(self.__last_task, event_name, native_event))
        self.__last_task = task
        self.__tasks.add(task)
        task.add_done_callback(self.__tasks.discard)

    async def __process(self, previous: typing.Optional[asyncio.Task[None]], event_name: str, native_event: typing.Any) -> None:
        if previous and not previous.done():
            await asyncio.wait({previous})
        handler_error: typing.Optional[Exception] = None
        try:
            await self.__dispatcher.dispatch(self.key, event_name, native_event)
        except Exception as e:
            handler_error = e
        if self.__cascades and self.identifier:
            await self.__cascades.handle_parent_event(self.identifier, event_name, native_event)
        if handler_error:
            self.__event_loop.call_exception_handler({
                "message": f"Handler for event '{event_name}' failed.",
                "exception": handler_error,
            })

    async def join(self) -> None:
        while self.is_busy:
            await asyncio.wait(set(self.__tasks))
