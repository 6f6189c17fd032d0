# standard libraries
import asyncio
import logging
import typing
import unittest

# third party libraries
import httpx

# local libraries
from nion.layout import Cascade
from nion.layout import DataSource
from nion.layout import Description
from nion.layout import Expression
from nion.layout import InstanceRegistry
from nion.layout import Settings
from nion.layout import TestComponents


class TestCascadeClass(unittest.TestCase):

    def setUp(self) -> None:
        self.registry = InstanceRegistry.InstanceRegistry()
        self.resolver = Expression.ExpressionResolver(self.registry)
        self.users_grid = TestComponents.DataGrid({"keyExpr": "id"})
        self.registry.register("usersGrid", self.users_grid)
        self.cascade = Description.CascadeSpec("usersGrid", "selection-changed", "https://api.example.com/posts?userId={id}", "id")
        self.urls: typing.List[str] = list()

    def tearDown(self) -> None:
        self.registry.clear()

    def __make_client(self, handler: typing.Optional[typing.Callable[[httpx.Request], typing.Any]] = None) -> httpx.AsyncClient:
        def record(request: httpx.Request) -> typing.Any:
            self.urls.append(str(request.url))
            if handler:
                return handler(request)
            return httpx.Response(200, json=[{"userId": int(request.url.params["userId"])}])
        return httpx.AsyncClient(transport=httpx.MockTransport(record))

    def test_cycle_is_rejected(self) -> None:
        nodes = [
            Description.ComponentNode("DataGrid", "a", cascade=Description.CascadeSpec("b", "selection-changed", "/x/{id}", "id")),
            Description.ComponentNode("DataGrid", "b", cascade=Description.CascadeSpec("c", "selection-changed", "/x/{id}", "id")),
            Description.ComponentNode("DataGrid", "c", cascade=Description.CascadeSpec("a", "selection-changed", "/x/{id}", "id")),
        ]
        with self.assertRaises(Cascade.CascadeCycleError) as context:
            Cascade.validate_cascade_graph(nodes)
        self.assertEqual(4, len(context.exception.cycle))
        self.assertEqual(context.exception.cycle[0], context.exception.cycle[-1])

    def test_self_parent_is_a_cycle(self) -> None:
        nodes = [Description.ComponentNode("DataGrid", "a", cascade=Description.CascadeSpec("a", "selection-changed", "/x/{id}", "id"))]
        with self.assertRaises(Description.LayoutError):
            Cascade.validate_cascade_graph(nodes)

    def test_chain_without_cycle_is_accepted(self) -> None:
        nodes = [
            Description.ComponentNode("DataGrid", "users"),
            Description.ComponentNode("DataGrid", "posts", cascade=Description.CascadeSpec("users", "selection-changed", "/posts?userId={id}", "id")),
            Description.ComponentNode("DataGrid", "comments", cascade=Description.CascadeSpec("posts", "selection-changed", "/comments?postId={id}", "id")),
            Description.ComponentNode("DataGrid", "likes", cascade=Description.CascadeSpec("posts", "row-click", "/likes?postId={id}", "id")),
        ]
        Cascade.validate_cascade_graph(nodes)

    def test_substitute_endpoint_quotes_value(self) -> None:
        self.assertEqual("https://api.example.com/posts?userId=7", Cascade.substitute_endpoint(self.cascade, 7))
        self.assertEqual("https://api.example.com/posts?userId=a%2Fb%20c", Cascade.substitute_endpoint(self.cascade, "a/b c"))
        self.assertEqual("https://api.example.com/posts?userId=a/b", Cascade.substitute_endpoint(self.cascade, "a/b", quote=False))

    def test_read_key_from_mapping_or_object(self) -> None:
        class Row:
            id = 3

        self.assertEqual(7, Cascade.read_key({"id": 7}, "id"))
        self.assertEqual(3, Cascade.read_key(Row(), "id"))
        self.assertIsNone(Cascade.read_key({"id": None}, "id"))
        self.assertIs(Cascade._missing, Cascade.read_key({"name": "x"}, "id"))
        self.assertIs(Cascade._missing, Cascade.read_key(None, "id"))

    def test_parent_event_with_key_fetches_dependent_data(self) -> None:
        with TestComponents.event_loop_context() as event_loop:
            client = self.__make_client()
            data_source = DataSource.DataSourceResolver("postsGrid", None, self.resolver, event_loop, http_client=client)
            controller = Cascade.CascadeController(self.resolver)
            controller.subscribe("postsGrid", self.cascade, data_source)
            self.assertTrue(controller.is_parent_event("usersGrid", "selection-changed"))
            self.assertFalse(controller.is_parent_event("usersGrid", "row-click"))
            self.assertEqual({"selection-changed"}, controller.parent_event_names("usersGrid"))
            event_loop.run_until_complete(controller.handle_parent_event("usersGrid", "selection-changed", {"id": 7}))
            event_loop.run_until_complete(data_source.wait())
            self.assertEqual(["https://api.example.com/posts?userId=7"], self.urls)
            self.assertEqual([{"userId": 7}], data_source.data)
            controller.close()
            data_source.close()
            event_loop.run_until_complete(client.aclose())

    def test_null_key_clears_dependent_without_fetching(self) -> None:
        with TestComponents.event_loop_context() as event_loop:
            client = self.__make_client()
            data_source = DataSource.DataSourceResolver("postsGrid", Description.InlineData([{"userId": 1}]), self.resolver, event_loop, http_client=client)
            data_source.start()
            controller = Cascade.CascadeController(self.resolver)
            controller.subscribe("postsGrid", self.cascade, data_source)
            event_loop.run_until_complete(controller.handle_parent_event("usersGrid", "selection-changed", {"id": None}))
            self.assertEqual(list(), self.urls)
            self.assertEqual(DataSource.FetchStatus.Idle, data_source.state.status)
            self.assertEqual(list(), data_source.data)
            controller.close()
            data_source.close()
            event_loop.run_until_complete(client.aclose())

    def test_key_read_from_parent_selection_when_payload_lacks_it(self) -> None:
        self.users_grid.selected_rows = [{"id": 12, "name": "Ann"}, {"id": 13, "name": "Bob"}]
        with TestComponents.event_loop_context() as event_loop:
            client = self.__make_client()
            data_source = DataSource.DataSourceResolver("postsGrid", None, self.resolver, event_loop, http_client=client)
            controller = Cascade.CascadeController(self.resolver)
            controller.subscribe("postsGrid", self.cascade, data_source)
            event_loop.run_until_complete(controller.handle_parent_event("usersGrid", "selection-changed", {"selectedRowsData": []}))
            event_loop.run_until_complete(data_source.wait())
            self.assertEqual(["https://api.example.com/posts?userId=12"], self.urls)
            controller.close()
            data_source.close()
            event_loop.run_until_complete(client.aclose())

    def test_empty_selection_clears_dependent(self) -> None:
        with TestComponents.event_loop_context() as event_loop:
            client = self.__make_client()
            data_source = DataSource.DataSourceResolver("postsGrid", None, self.resolver, event_loop, http_client=client)
            controller = Cascade.CascadeController(self.resolver, Settings.RenderSettings(selection_method="getSelectedRowsData"))
            controller.subscribe("postsGrid", self.cascade, data_source)
            event_loop.run_until_complete(controller.handle_parent_event("usersGrid", "selection-changed", None))
            self.assertEqual(list(), self.urls)
            self.assertEqual(DataSource.FetchStatus.Idle, data_source.state.status)
            controller.close()
            data_source.close()
            event_loop.run_until_complete(client.aclose())

    def test_other_parent_events_are_ignored(self) -> None:
        with TestComponents.event_loop_context() as event_loop:
            client = self.__make_client()
            data_source = DataSource.DataSourceResolver("postsGrid", None, self.resolver, event_loop, http_client=client)
            controller = Cascade.CascadeController(self.resolver)
            controller.subscribe("postsGrid", self.cascade, data_source)
            event_loop.run_until_complete(controller.handle_parent_event("usersGrid", "row-click", {"id": 7}))
            event_loop.run_until_complete(controller.handle_parent_event("otherGrid", "selection-changed", {"id": 7}))
            self.assertEqual(list(), self.urls)
            controller.close()
            data_source.close()
            event_loop.run_until_complete(client.aclose())

    def test_subscribing_again_replaces_subscription(self) -> None:
        with TestComponents.event_loop_context() as event_loop:
            data_source = DataSource.DataSourceResolver("postsGrid", None, self.resolver, event_loop)
            controller = Cascade.CascadeController(self.resolver)
            controller.subscribe("postsGrid", self.cascade, data_source)
            other_cascade = Description.CascadeSpec("usersGrid", "row-click", "/posts?userId={id}", "id")
            controller.subscribe("postsGrid", other_cascade, data_source)
            self.assertEqual(1, len(controller.subscriptions))
            self.assertEqual({"row-click"}, controller.parent_event_names("usersGrid"))
            controller.unsubscribe("postsGrid")
            self.assertEqual(0, len(controller.subscriptions))
            data_source.close()

    def test_latest_parent_selection_wins(self) -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            user_id = int(request.url.params["userId"])
            if user_id == 7:
                await release_first.wait()
            return httpx.Response(200, json=[{"userId": user_id}])

        with TestComponents.event_loop_context() as event_loop:
            release_first = asyncio.Event()
            client = self.__make_client(handler)
            data_source = DataSource.DataSourceResolver("postsGrid", None, self.resolver, event_loop, http_client=client)
            controller = Cascade.CascadeController(self.resolver)
            controller.subscribe("postsGrid", self.cascade, data_source)
            event_loop.run_until_complete(controller.handle_parent_event("usersGrid", "selection-changed", {"id": 7}))
            event_loop.run_until_complete(asyncio.sleep(0.01))
            event_loop.run_until_complete(controller.handle_parent_event("usersGrid", "selection-changed", {"id": 8}))
            event_loop.run_until_complete(data_source.wait())
            release_first.set()
            event_loop.run_until_complete(asyncio.sleep(0.01))
            self.assertEqual([{"userId": 8}], data_source.data)
            self.assertEqual(DataSource.FetchStatus.Success, data_source.state.status)
            controller.close()
            data_source.close()
            event_loop.run_until_complete(client.aclose())


if __name__ == '__main__':
    logging.getLogger().setLevel(logging.DEBUG)
    unittest.main()
