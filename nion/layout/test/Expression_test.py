# standard libraries
import logging
import unittest

# third party libraries
# None

# local libraries
from nion.layout import Expression
from nion.layout import InstanceRegistry
from nion.layout import TestComponents


class TestExpressionClass(unittest.TestCase):

    def setUp(self) -> None:
        self.registry = InstanceRegistry.InstanceRegistry()
        self.resolver = Expression.ExpressionResolver(self.registry)
        self.grid = TestComponents.DataGrid({"keyExpr": "id"})
        self.grid.selected_rows = [{"id": 1}, {"id": 2}]
        self.registry.register("grid", self.grid)

    def tearDown(self) -> None:
        self.registry.clear()

    def __resolve(self, value):
        with TestComponents.event_loop_context() as event_loop:
            return event_loop.run_until_complete(self.resolver.resolve(value))

    def test_parse_method_call_without_arguments(self) -> None:
        expression = Expression.parse_expression("$mainGrid.getSelectedRowsData()")
        self.assertEqual("mainGrid", expression.identifier)
        self.assertEqual("getSelectedRowsData", expression.method)
        self.assertEqual((), expression.args)
        self.assertFalse(expression.is_reference)

    def test_parse_method_call_with_literal_arguments(self) -> None:
        expression = Expression.parse_expression("$mainGrid.columnOption('email', 'visible', 3, -1.5, true, null, [1, 2], {'a': false})")
        self.assertEqual(("email", "visible", 3, -1.5, True, None, [1, 2], {"a": False}), expression.args)

    def test_parse_bare_reference(self) -> None:
        expression = Expression.parse_expression("$mainGrid")
        self.assertEqual("mainGrid", expression.identifier)
        self.assertTrue(expression.is_reference)

    def test_parse_rejects_chained_calls(self) -> None:
        with self.assertRaises(Expression.ExpressionSyntaxError):
            Expression.parse_expression("$salesChart.getDataSource().items()")

    def test_parse_rejects_nested_expressions_and_operators(self) -> None:
        for text in ("$grid.option($other.value())", "$grid.option(1 + 2)", "$grid.option(key=1)", "$grid.option", "$grid.option("):
            with self.subTest(text=text):
                with self.assertRaises(Expression.ExpressionSyntaxError):
                    Expression.parse_expression(text)

    def test_dollar_literals_are_not_expressions(self) -> None:
        self.assertTrue(Expression.is_expression("$grid.totalCount()"))
        self.assertFalse(Expression.is_expression("$#,##0"))
        self.assertFalse(Expression.is_expression("$100"))
        self.assertFalse(Expression.is_expression("grid"))
        self.assertFalse(Expression.is_expression(42))
        self.assertEqual("$#,##0", Expression.tag_value("$#,##0"))

    def test_tag_value_reports_malformed_expression(self) -> None:
        with self.assertLogs(level=logging.WARNING):
            tagged = Expression.tag_value({"rows": "$grid.a().b()"})
        self.assertIsInstance(tagged["rows"], Expression.InvalidExpression)

    def test_selected_rows_resolve_to_method_result(self) -> None:
        self.assertEqual([{"id": 1}, {"id": 2}], self.__resolve("$grid.getSelectedRowsData()"))

    def test_bare_reference_resolves_to_instance(self) -> None:
        self.assertIs(self.grid, self.__resolve("$grid"))

    def test_literals_pass_through_unchanged(self) -> None:
        for value in ("delete", 3, True, None, [1, 2], {"a": 1}):
            with self.subTest(value=value):
                self.assertEqual(value, self.__resolve(value))

    def test_missing_identifier_resolves_to_none_with_warning(self) -> None:
        with self.assertLogs(level=logging.WARNING):
            self.assertIsNone(self.__resolve("$missingId.method()"))

    def test_missing_method_resolves_to_none_with_warning(self) -> None:
        with self.assertLogs(level=logging.WARNING):
            self.assertIsNone(self.__resolve("$grid.missingMethod()"))

    def test_method_outside_capabilities_is_not_called(self) -> None:
        # refresh exists on the grid but is not one of its capabilities.
        with self.assertLogs(level=logging.WARNING):
            self.assertIsNone(self.__resolve("$grid.refresh()"))

    def test_failing_method_resolves_to_none_with_warning(self) -> None:
        with self.assertLogs(level=logging.WARNING):
            self.assertIsNone(self.__resolve("$grid.fail()"))

    def test_asynchronous_method_is_awaited(self) -> None:
        self.grid.data = [{"id": 1}, {"id": 2}, {"id": 3}]
        self.assertEqual({"count": 3}, self.__resolve("$grid.loadSummary()"))

    def test_resolve_now_does_not_await(self) -> None:
        self.grid.data = [{"id": 1}, {"id": 2}]
        self.assertEqual(2, self.resolver.resolve_now("$grid.totalCount()"))
        with self.assertLogs(level=logging.WARNING):
            self.assertIsNone(self.resolver.resolve_now("$grid.loadSummary()"))

    def test_mixed_arguments_resolve_independently(self) -> None:
        args = {"action": "delete", "rows": "$grid.getSelectedRowsData()", "keys": "$grid.getSelectedRowKeys()"}
        with TestComponents.event_loop_context() as event_loop:
            resolved_args = event_loop.run_until_complete(self.resolver.resolve_arguments(args))
        self.assertEqual({"action": "delete", "rows": [{"id": 1}, {"id": 2}], "keys": [1, 2]}, resolved_args)
        self.assertEqual(["action", "rows", "keys"], list(resolved_args.keys()))

    def test_resolve_structure_resolves_nested_expressions(self) -> None:
        body = Expression.tag_value({"ids": "$grid.getSelectedRowKeys()", "meta": {"count": "$grid.totalCount()"}, "tags": ["a", "$grid.option('keyExpr')"]})
        with TestComponents.event_loop_context() as event_loop:
            resolved = event_loop.run_until_complete(self.resolver.resolve_structure(body))
        self.assertEqual({"ids": [1, 2], "meta": {"count": 0}, "tags": ["a", "id"]}, resolved)

    def test_unregistered_instance_no_longer_resolves(self) -> None:
        self.registry.unregister("grid")
        with self.assertLogs(level=logging.WARNING):
            self.assertIsNone(self.__resolve("$grid"))


if __name__ == '__main__':
    logging.getLogger().setLevel(logging.DEBUG)
    unittest.main()
