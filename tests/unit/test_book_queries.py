"""
Query Layer Unit Testing

Validates the exact filters, updates, projections, sort specifications and
aggregation pipelines BookQueries sends to PyMongo, plus translation of
driver errors into the bookstore exception hierarchy. PyMongo collections are
replaced by mocks; no server is needed.
"""

from unittest.mock import MagicMock

import pytest
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

from bookstore.data.exceptions import ConnectionException, IndexException, OperationException
from bookstore.data.queries import (
    AUTHOR_YEAR_INDEX,
    TITLE_AUTHOR_PRICE_PROJECTION,
    TITLE_INDEX,
    BookQueries,
    author_with_most_books_pipeline,
    average_price_by_genre_pipeline,
    books_by_decade_pipeline,
    published_after_filter,
)

from tests.fixtures.book_fixtures import BookDocumentFactory, make_cursor, make_explain_output


@pytest.fixture
def queries(mock_collection):
    return BookQueries(mock_collection)


class TestFilterQueries:
    """Equality, range and compound filters."""

    @pytest.mark.unit
    def test_find_by_genre_sends_equality_filter(self, queries, mock_collection):
        documents = BookDocumentFactory.build_batch(2, genre="Fiction")
        mock_collection.find.return_value = make_cursor(documents)

        result = queries.find_by_genre("Fiction")

        mock_collection.find.assert_called_once_with({"genre": "Fiction"}, None)
        assert result == documents

    @pytest.mark.unit
    def test_find_published_after_uses_strict_greater_than(self, queries, mock_collection):
        queries.find_published_after(1950)

        mock_collection.find.assert_called_once_with({"published_year": {"$gt": 1950}}, None)

    @pytest.mark.unit
    def test_published_after_filter_excludes_boundary_year(self):
        # $gt, never $gte
        assert published_after_filter(1950) == {"published_year": {"$gt": 1950}}

    @pytest.mark.unit
    def test_find_by_author(self, queries, mock_collection):
        queries.find_by_author("George Orwell")

        mock_collection.find.assert_called_once_with({"author": "George Orwell"}, None)

    @pytest.mark.unit
    def test_find_in_stock_published_after_combines_predicates(self, queries, mock_collection):
        queries.find_in_stock_published_after(2010)

        mock_collection.find.assert_called_once_with(
            {"in_stock": True, "published_year": {"$gt": 2010}}, None
        )

    @pytest.mark.unit
    def test_empty_result_is_an_empty_list(self, queries, mock_collection):
        mock_collection.find.return_value = make_cursor([])

        assert queries.find_by_genre("Poetry") == []


class TestShapingQueries:
    """Projection, sorting and pagination."""

    @pytest.mark.unit
    def test_projection_suppresses_identity_field(self, queries, mock_collection):
        rows = [{"title": "1984", "author": "George Orwell", "price": 10.0}]
        mock_collection.find.return_value = make_cursor(rows)

        result = queries.find_title_author_price()

        mock_collection.find.assert_called_once_with({}, TITLE_AUTHOR_PRICE_PROJECTION)
        assert TITLE_AUTHOR_PRICE_PROJECTION == {"_id": 0, "title": 1, "author": 1, "price": 1}
        assert result == rows

    @pytest.mark.unit
    @pytest.mark.parametrize("direction", [ASCENDING, DESCENDING])
    def test_sort_by_price(self, queries, mock_collection, direction):
        cursor = make_cursor()
        mock_collection.find.return_value = cursor

        queries.sort_by_price(direction)

        mock_collection.find.assert_called_once_with({}, None)
        cursor.sort.assert_called_once_with([("price", direction)])
        cursor.limit.assert_not_called()

    @pytest.mark.unit
    def test_first_page_limits_to_five(self, queries, mock_collection):
        cursor = make_cursor(BookDocumentFactory.build_batch(5))
        mock_collection.find.return_value = cursor

        result = queries.first_page(5)

        cursor.limit.assert_called_once_with(5)
        cursor.sort.assert_not_called()
        assert len(result) == 5


class TestWriteOperations:
    """Point update and point delete."""

    @pytest.mark.unit
    def test_update_price_sets_price_on_title(self, queries, mock_collection):
        mock_collection.update_one.return_value = MagicMock(matched_count=1, modified_count=1)

        result = queries.update_price("1984", 13.99)

        mock_collection.update_one.assert_called_once_with(
            {"title": "1984"}, {"$set": {"price": 13.99}}
        )
        assert result.modified_count == 1

    @pytest.mark.unit
    def test_update_price_matching_nothing_is_not_an_error(self, queries, mock_collection):
        mock_collection.update_one.return_value = MagicMock(matched_count=0, modified_count=0)

        result = queries.update_price("Missing Title", 13.99)

        assert result.matched_count == 0

    @pytest.mark.unit
    def test_delete_by_title(self, queries, mock_collection):
        mock_collection.delete_one.return_value = MagicMock(deleted_count=1)

        queries.delete_by_title("Moby Dick")

        mock_collection.delete_one.assert_called_once_with({"title": "Moby Dick"})

    @pytest.mark.unit
    def test_delete_missing_title_is_not_an_error(self, queries, mock_collection):
        mock_collection.delete_one.return_value = MagicMock(deleted_count=0)

        assert queries.delete_by_title("Moby Dick").deleted_count == 0

    @pytest.mark.unit
    def test_rejected_update_raises_operation_exception(self, queries, mock_collection):
        mock_collection.update_one.side_effect = OperationFailure("bad update", code=9)

        with pytest.raises(OperationException) as exc_info:
            queries.update_price("1984", 13.99)

        assert exc_info.value.collection == "books"
        assert exc_info.value.database == "plp_bookstore"
        assert isinstance(exc_info.value.original_error, OperationFailure)


class TestAggregationPipelines:
    """Pipelines must match the document-query language exactly."""

    @pytest.mark.unit
    def test_average_price_by_genre_pipeline(self):
        assert average_price_by_genre_pipeline() == [
            {"$group": {"_id": "$genre", "avgPrice": {"$avg": "$price"}}},
            {"$sort": {"avgPrice": -1}},
        ]

    @pytest.mark.unit
    def test_author_with_most_books_pipeline(self):
        assert author_with_most_books_pipeline() == [
            {"$group": {"_id": "$author", "totalBooks": {"$sum": 1}}},
            {"$sort": {"totalBooks": -1}},
            {"$limit": 1},
        ]

    @pytest.mark.unit
    def test_books_by_decade_pipeline(self):
        assert books_by_decade_pipeline() == [
            {
                "$group": {
                    "_id": {
                        "$concat": [
                            {"$toString": {"$subtract": ["$published_year", {"$mod": ["$published_year", 10]}]}},
                            "s",
                        ]
                    },
                    "count": {"$sum": 1},
                }
            },
            {"$sort": {"_id": 1}},
        ]

    @pytest.mark.unit
    def test_average_price_by_genre_returns_server_rows(self, queries, mock_collection):
        rows = [{"_id": "Fiction", "avgPrice": 12.5}, {"_id": "Dystopian", "avgPrice": 11.0}]
        mock_collection.aggregate.return_value = iter(rows)

        assert queries.average_price_by_genre() == rows
        mock_collection.aggregate.assert_called_once_with(average_price_by_genre_pipeline())

    @pytest.mark.unit
    def test_count_by_decade_runs_decade_pipeline(self, queries, mock_collection):
        mock_collection.aggregate.return_value = iter([{"_id": "1940s", "count": 1}])

        assert queries.count_by_decade() == [{"_id": "1940s", "count": 1}]
        mock_collection.aggregate.assert_called_once_with(books_by_decade_pipeline())


class TestIndexes:
    """Index creation and conflict handling."""

    @pytest.mark.unit
    def test_create_title_index(self, queries, mock_collection):
        mock_collection.create_index.return_value = "title_1"

        assert queries.create_title_index() == "title_1"
        mock_collection.create_index.assert_called_once_with([("title", 1)])

    @pytest.mark.unit
    def test_create_author_year_index(self, queries, mock_collection):
        mock_collection.create_index.return_value = "author_1_published_year_1"

        assert queries.create_author_year_index() == "author_1_published_year_1"
        mock_collection.create_index.assert_called_once_with(AUTHOR_YEAR_INDEX)
        assert AUTHOR_YEAR_INDEX == [("author", 1), ("published_year", 1)]

    @pytest.mark.unit
    @pytest.mark.parametrize("code", [85, 86])
    def test_conflicting_index_raises_index_exception(self, queries, mock_collection, code):
        mock_collection.create_index.side_effect = OperationFailure(
            "Index already exists with different options", code=code
        )

        with pytest.raises(IndexException) as exc_info:
            queries.create_title_index()

        assert exc_info.value.keys == TITLE_INDEX
        assert isinstance(exc_info.value, OperationException)

    @pytest.mark.unit
    def test_other_index_failures_are_operation_exceptions(self, queries, mock_collection):
        mock_collection.create_index.side_effect = OperationFailure("not authorized", code=13)

        with pytest.raises(OperationException) as exc_info:
            queries.create_title_index()

        assert not isinstance(exc_info.value, IndexException)

    @pytest.mark.unit
    def test_list_index_names(self, queries, mock_collection):
        mock_collection.list_indexes.return_value = iter([{"name": "_id_"}, {"name": "title_1"}])

        assert queries.list_index_names() == ["_id_", "title_1"]


class TestExplain:
    """Explain-plan inspection through the collection."""

    @pytest.mark.unit
    def test_explain_title_lookup(self, queries, mock_collection):
        cursor = make_cursor()
        cursor.explain.return_value = make_explain_output("FETCH", "IXSCAN", "title_1")
        mock_collection.find.return_value = cursor

        plan = queries.explain_title_lookup("1984")

        mock_collection.find.assert_called_once_with({"title": "1984"})
        assert plan.stage == "FETCH"
        assert plan.index_name == "title_1"
        assert plan.uses_index_scan

    @pytest.mark.unit
    def test_explain_author_year_lookup(self, queries, mock_collection):
        cursor = make_cursor()
        cursor.explain.return_value = make_explain_output(
            "FETCH", "IXSCAN", "author_1_published_year_1"
        )
        mock_collection.find.return_value = cursor

        plan = queries.explain_author_year_lookup("George Orwell", 1945)

        mock_collection.find.assert_called_once_with(
            {"author": "George Orwell", "published_year": {"$gt": 1945}}
        )
        assert plan.index_name == "author_1_published_year_1"


class TestErrorTranslation:

    @pytest.mark.unit
    def test_unreachable_server_during_find(self, queries, mock_collection):
        mock_collection.find.side_effect = ServerSelectionTimeoutError("no servers")

        with pytest.raises(ConnectionException):
            queries.find_by_genre("Fiction")

    @pytest.mark.unit
    def test_failed_aggregation_raises_operation_exception(self, queries, mock_collection):
        mock_collection.aggregate.side_effect = OperationFailure("Unrecognized pipeline stage", code=40324)

        with pytest.raises(OperationException) as exc_info:
            queries.count_by_decade()

        assert exc_info.value.operation.value == "aggregation"
