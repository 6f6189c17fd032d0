"""
Data sources supply the records a component displays.

Each component with a data description gets its own DataSourceResolver. Inline records are available immediately.
Remote records are fetched on the event loop; every new fetch discards the data of the previous one and only the
most recently triggered fetch is allowed to land.

States: Idle -> Loading -> Success | Error, and Success | Error -> Loading on the next fetch.
"""

from __future__ import annotations

# standard libraries
import asyncio
import dataclasses
import enum
import logging
import typing

# third party libraries
import httpx

# local libraries
from nion.layout import Description
from nion.layout import Expression
from nion.layout import Settings
from nion.utils import Event
from nion.utils import Model


class DataFetchError(Exception):
    pass


class FetchStatus(enum.Enum):
    Idle = 0
    Loading = 1
    Success = 2
    Error = 3


@dataclasses.dataclass(frozen=True)
class FetchState:
    status: FetchStatus
    data: typing.Optional[typing.List[typing.Any]] = None
    error: typing.Optional[BaseException] = None

    @property
    def has_data(self) -> bool:
        return self.status == FetchStatus.Success


IDLE = FetchState(FetchStatus.Idle)
LOADING = FetchState(FetchStatus.Loading)


@dataclasses.dataclass
class DataRequest:
    method: str
    url: str
    headers: typing.Dict[str, str] = dataclasses.field(default_factory=dict)
    params: typing.Dict[str, typing.Any] = dataclasses.field(default_factory=dict)
    body: typing.Any = None


async def build_request(remote_data: Description.RemoteData, resolver: Expression.ExpressionResolver,
                        settings: Settings.RenderSettings, endpoint: typing.Optional[str] = None) -> DataRequest:
    """Build a request, resolving the expressions embedded in headers, query parameters and body."""
    headers = dict(settings.headers)
    for k, v in (await resolver.resolve_structure(remote_data.headers)).items():
        if v is not None:
            headers[str(k)] = str(v)
    params = {k: v for k, v in (await resolver.resolve_structure(remote_data.query_parameters)).items() if v is not None}
    body = await resolver.resolve_structure(remote_data.body)
    url = settings.resolve_url(endpoint if endpoint is not None else remote_data.endpoint)
    # query parameters are merged with any query already in the endpoint.
    if params:
        url = str(httpx.URL(url).copy_merge_params(params))
    return DataRequest(remote_data.effective_method, url, headers, params, body)


def parse_records(payload: typing.Any) -> typing.List[typing.Any]:
    records = None
    if isinstance(payload, list):
        records = payload
    elif isinstance(payload, typing.Mapping):
        for key in ("data", "items"):
            if isinstance(payload.get(key), list):
                records = payload[key]
                break
    if records is not None and all(isinstance(record, typing.Mapping) for record in records):
        return records
    raise DataFetchError("Response is not a collection of records.")


class DataSourceResolver:
    """Owns the fetch state of one component's data.

    The `data_model` holds the data to show: the records on success and an empty list in every other state.
    `state_changed_event` fires with the new FetchState after each transition.
    """

    def __init__(self, identifier: typing.Optional[str], data_spec: typing.Optional[Description.DataSpec],
                 resolver: Expression.ExpressionResolver, event_loop: asyncio.AbstractEventLoop, *,
                 settings: typing.Optional[Settings.RenderSettings] = None,
                 http_client: typing.Optional[httpx.AsyncClient] = None) -> None:
        self.identifier = identifier
        self.data_spec = data_spec
        self.__resolver = resolver
        self.__event_loop = event_loop
        self.__settings = settings or Settings.RenderSettings()
        self.__http_client = http_client
        self.__state = IDLE
        self.__generation = 0
        self.__task: typing.Optional[asyncio.Task[None]] = None
        self.__endpoint: typing.Optional[str] = None
        self.__closed = False
        self.data_model = Model.PropertyModel(list())
        self.state_changed_event = Event.Event()

    def close(self) -> None:
        self.__closed = True
        # the data model stays readable; bindings to it are closed by their owners.
        self.__cancel()

    @property
    def state(self) -> FetchState:
        return self.__state

    @property
    def data(self) -> typing.List[typing.Any]:
        return self.__state.data if self.__state.data is not None else list()

    @property
    def is_loading(self) -> bool:
        return self.__task is not None and not self.__task.done()

    def __set_state(self, state: FetchState) -> None:
        self.__state = state
        self.data_model.value = list(state.data) if state.data is not None else list()
        self.state_changed_event.fire(state)

    def __cancel(self) -> None:
        self.__generation += 1
        if self.__task and not self.__task.done():
            self.__task.cancel()
        self.__task = None

    def start(self) -> None:
        """Load the initial data. Inline data succeeds immediately; remote data starts a fetch."""
        if isinstance(self.data_spec, Description.InlineData):
            self.__set_state(FetchState(FetchStatus.Success, list(self.data_spec.records)))
        elif isinstance(self.data_spec, Description.RemoteData):
            self.trigger()

    def refresh(self) -> None:
        """Fetch again with the last endpoint used. This is the host's retry path."""
        if self.__endpoint is not None or isinstance(self.data_spec, Description.RemoteData):
            self.trigger(self.__endpoint)
        elif isinstance(self.data_spec, Description.InlineData):
            self.start()
        else:
            logging.warning("Data for '%s' has no endpoint to refresh.", self.identifier)

    def reset(self) -> None:
        """Drop any in-flight fetch and return to Idle with no data."""
        assert not self.__closed
        self.__cancel()
        self.__endpoint = None
        self.__set_state(IDLE)

    def trigger(self, endpoint: typing.Optional[str] = None) -> asyncio.Task[None]:
        """Start a fetch, optionally with an endpoint that replaces the described one.

        Any earlier fetch is cancelled and its result is never applied.
        """
        assert not self.__closed
        self.__cancel()
        self.__endpoint = endpoint
        generation = self.__generation
        self.__set_state(LOADING)
        self.__task = self.__event_loop.create_task(self.__fetch(generation, endpoint))
        return self.__task

    async def wait(self) -> None:
        """Wait for the current fetch, if any, to finish."""
        # a newer fetch may replace the task while waiting.
        while self.__task and not self.__task.done():
            await asyncio.wait({self.__task})

    def __is_current(self, generation: int) -> bool:
        return not self.__closed and generation == self.__generation

    async def __fetch(self, generation: int, endpoint: typing.Optional[str]) -> None:
        remote_data = self.data_spec if isinstance(self.data_spec, Description.RemoteData) else Description.RemoteData(endpoint or "")
        try:
            request = await build_request(remote_data, self.__resolver, self.__settings, endpoint)
            logging.debug("Fetching data for '%s': %s %s", self.identifier, request.method, request.url)
            records = await self.__send(request)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self.__is_current(generation):
                logging.warning("Data fetch for '%s' failed: %s", self.identifier, e)
                self.__set_state(FetchState(FetchStatus.Error, error=e))
            return
        if self.__is_current(generation):
            self.__set_state(FetchState(FetchStatus.Success, records))
        else:
            logging.debug("Discarding stale data for '%s'.", self.identifier)

    async def __send(self, request: DataRequest) -> typing.List[typing.Any]:
        kwargs: typing.Dict[str, typing.Any] = {"headers": request.headers}
        if request.body is not None:
            kwargs["json"] = request.body
        if self.__http_client:
            response = await self.__http_client.request(request.method, request.url, **kwargs)
        else:
            async with httpx.AsyncClient(timeout=self.__settings.timeout) as client:
                response = await client.request(request.method, request.url, **kwargs)
        if not response.is_success:
            raise DataFetchError(f"{request.method} {request.url} returned status {response.status_code}.")
        try:
            payload = response.json()
        except ValueError as e:
            raise DataFetchError(f"{request.method} {request.url} did not return JSON.") from e
        return parse_records(payload)
