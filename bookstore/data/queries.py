"""
Bookstore Query Layer

Every operation the query program runs against the ``books`` collection,
expressed through PyMongo: equality and range filters, a point update and a
point delete, projection, sorting, pagination, three aggregation pipelines,
index creation and explain-plan inspection.

Filters, updates and pipelines are built by module-level functions so the
exact document-query shape sent to the server can be inspected on its own.
All execution (matching, grouping, sorting, index selection) is left to the
server; this module only issues the calls and returns their results.

Key Features:
- One :class:`BookQueries` method per named operation
- PyMongo errors translated into the bookstore exception hierarchy
- Per-operation structured logging with result counts and duration
- :func:`summarize_plan` reduces explain output to stage and index name
"""

import time
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import structlog
from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.errors import PyMongoError
from pymongo.results import DeleteResult, UpdateResult

from bookstore.data.exceptions import (
    DatabaseOperationType, IndexException, handle_database_error
)


logger = structlog.get_logger(__name__)

Document = Dict[str, Any]
IndexKeys = List[Tuple[str, int]]

INDEX_SCAN_STAGE = 'IXSCAN'
COLLECTION_SCAN_STAGE = 'COLLSCAN'

TITLE_INDEX: IndexKeys = [('title', ASCENDING)]
AUTHOR_YEAR_INDEX: IndexKeys = [('author', ASCENDING), ('published_year', ASCENDING)]


# Query builders

def equals_filter(field_name: str, value: Any) -> Document:
    return {field_name: value}


def published_after_filter(year: int) -> Document:
    """Strictly greater than ``year``; the boundary year is excluded."""
    return {'published_year': {'$gt': year}}


def in_stock_published_after_filter(year: int) -> Document:
    return {'in_stock': True, 'published_year': {'$gt': year}}


def author_published_after_filter(author: str, year: int) -> Document:
    return {'author': author, 'published_year': {'$gt': year}}


def set_price_update(price: float) -> Document:
    return {'$set': {'price': price}}


TITLE_AUTHOR_PRICE_PROJECTION: Document = {'_id': 0, 'title': 1, 'author': 1, 'price': 1}


def average_price_by_genre_pipeline() -> List[Document]:
    return [
        {'$group': {'_id': '$genre', 'avgPrice': {'$avg': '$price'}}},
        {'$sort': {'avgPrice': DESCENDING}},
    ]


def author_with_most_books_pipeline() -> List[Document]:
    return [
        {'$group': {'_id': '$author', 'totalBooks': {'$sum': 1}}},
        {'$sort': {'totalBooks': DESCENDING}},
        {'$limit': 1},
    ]


def books_by_decade_pipeline() -> List[Document]:
    """
    Group by decade label, e.g. 1959 -> ``"1950s"``, sorted by label.

    The decade is ``year - year % 10`` computed server side.
    """
    decade = {'$subtract': ['$published_year', {'$mod': ['$published_year', 10]}]}
    return [
        {
            '$group': {
                '_id': {'$concat': [{'$toString': decade}, 's']},
                'count': {'$sum': 1},
            }
        },
        {'$sort': {'_id': ASCENDING}},
    ]


# Explain plans

@dataclass
class PlanSummary:
    """
    The parts of an explain result that show which access path was chosen.

    Attributes:
        stage: Top-level stage of the winning plan (``FETCH``, ``IXSCAN``, ``COLLSCAN``...)
        input_stage: Stage directly beneath the top-level stage, if any
        index_name: Name of the first index found in the winning plan, if any
        stages: Every stage name in the winning plan, top down
        raw: The explain document as returned by the server
    """

    stage: Optional[str]
    input_stage: Optional[str] = None
    index_name: Optional[str] = None
    stages: List[str] = field(default_factory=list)
    raw: Document = field(default_factory=dict, repr=False)

    @property
    def uses_index_scan(self) -> bool:
        # Newer servers report single-key equality lookups as EXPRESS_IXSCAN
        return any(stage.endswith(INDEX_SCAN_STAGE) for stage in self.stages)

    @property
    def top_level_index_scan(self) -> bool:
        """True only when the winning plan itself is the index scan, not a stage beneath it."""
        return self.stage is not None and self.stage.endswith(INDEX_SCAN_STAGE)

    @property
    def uses_collection_scan(self) -> bool:
        return COLLECTION_SCAN_STAGE in self.stages

    def as_row(self) -> Document:
        return {
            'stage': self.stage,
            'inputStage': self.input_stage,
            'indexName': self.index_name,
        }


def _walk_stages(plan: Document) -> Iterator[Document]:
    yield plan
    if isinstance(plan.get('inputStage'), dict):
        yield from _walk_stages(plan['inputStage'])
    for child in plan.get('inputStages', []):
        yield from _walk_stages(child)


def winning_plan(explain_output: Document) -> Document:
    """
    Extract ``queryPlanner.winningPlan``, unwrapping the ``queryPlan``
    envelope that slot-based execution adds on newer servers.
    """
    plan = explain_output.get('queryPlanner', {}).get('winningPlan', {})
    if 'queryPlan' in plan:
        plan = plan['queryPlan']
    return plan


def summarize_plan(explain_output: Document) -> PlanSummary:
    plan = winning_plan(explain_output)
    nodes = list(_walk_stages(plan)) if plan else []

    input_stage = None
    if isinstance(plan.get('inputStage'), dict):
        input_stage = plan['inputStage'].get('stage')
    elif plan.get('inputStages'):
        input_stage = plan['inputStages'][0].get('stage')

    index_name = next((node['indexName'] for node in nodes if 'indexName' in node), None)

    return PlanSummary(
        stage=plan.get('stage'),
        input_stage=input_stage,
        index_name=index_name,
        stages=[node['stage'] for node in nodes if 'stage' in node],
        raw=explain_output
    )


# Operations

def database_operation(operation_type: DatabaseOperationType) -> Callable:
    """
    Decorator for :class:`BookQueries` methods: logs duration and result size
    and translates PyMongo errors into bookstore exceptions.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(self: 'BookQueries', *args, **kwargs):
            start_time = time.perf_counter()
            try:
                result = func(self, *args, **kwargs)
            except PyMongoError as e:
                # The runner reports the failure; this records where it happened
                logger.debug(
                    f"Database operation failed: {func.__name__}",
                    operation=func.__name__,
                    collection=self.collection_name,
                    duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                    exception_type=type(e).__name__,
                    exception_message=str(e)
                )
                raise handle_database_error(
                    e, operation_type, self.database_name, self.collection_name
                ) from e

            record_count = None
            if isinstance(result, list):
                record_count = len(result)
            elif hasattr(result, 'matched_count'):
                record_count = result.matched_count
            elif hasattr(result, 'deleted_count'):
                record_count = result.deleted_count

            logger.debug(
                f"Database operation completed: {func.__name__}",
                operation=func.__name__,
                operation_type=operation_type.value,
                collection=self.collection_name,
                record_count=record_count,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2)
            )
            return result

        return wrapper
    return decorator


class BookQueries:
    """
    Named operations against a ``books`` collection.

    Each method issues one server call and returns the driver's result
    materialised as plain Python values.
    """

    def __init__(self, collection: Collection):
        self.collection = collection

    @property
    def collection_name(self) -> str:
        return self.collection.name

    @property
    def database_name(self) -> str:
        return self.collection.database.name

    # Reads

    @database_operation(DatabaseOperationType.READ)
    def find(self, filter_dict: Optional[Document] = None,
             projection: Optional[Document] = None,
             sort: Optional[IndexKeys] = None,
             limit: Optional[int] = None) -> List[Document]:
        """
        Find documents with optional projection, sort and limit.

        Args:
            filter_dict: Query filter (defaults to every document)
            projection: Fields to include/exclude in result
            sort: Sort specification as list of (field, direction) tuples
            limit: Maximum number of documents to return

        Returns:
            List of matching documents
        """
        cursor = self.collection.find(filter_dict or {}, projection)
        if sort:
            cursor = cursor.sort(sort)
        if limit:
            cursor = cursor.limit(limit)
        return list(cursor)

    def find_by_genre(self, genre: str = 'Fiction') -> List[Document]:
        return self.find(equals_filter('genre', genre))

    def find_published_after(self, year: int = 1950) -> List[Document]:
        return self.find(published_after_filter(year))

    def find_by_author(self, author: str = 'George Orwell') -> List[Document]:
        return self.find(equals_filter('author', author))

    def find_in_stock_published_after(self, year: int = 2010) -> List[Document]:
        return self.find(in_stock_published_after_filter(year))

    def find_title_author_price(self) -> List[Document]:
        return self.find(projection=TITLE_AUTHOR_PRICE_PROJECTION)

    def sort_by_price(self, direction: int = ASCENDING) -> List[Document]:
        """Every document ordered by price; ties keep server order."""
        return self.find(sort=[('price', direction)])

    def first_page(self, page_size: int = 5) -> List[Document]:
        return self.find(limit=page_size)

    # Writes

    @database_operation(DatabaseOperationType.WRITE)
    def update_price(self, title: str = '1984', price: float = 13.99) -> UpdateResult:
        """
        Set ``price`` on the first document with ``title``.

        Matching nothing is a successful no-op; the counts on the returned
        result tell the two cases apart.
        """
        result = self.collection.update_one(equals_filter('title', title), set_price_update(price))
        logger.info(
            "Price updated",
            title=title,
            price=price,
            matched_count=result.matched_count,
            modified_count=result.modified_count
        )
        return result

    @database_operation(DatabaseOperationType.WRITE)
    def delete_by_title(self, title: str = 'Moby Dick') -> DeleteResult:
        """Remove at most one document with ``title``; a missing title is not an error."""
        result = self.collection.delete_one(equals_filter('title', title))
        logger.info("Book deleted", title=title, deleted_count=result.deleted_count)
        return result

    # Aggregations

    @database_operation(DatabaseOperationType.AGGREGATION)
    def aggregate(self, pipeline: List[Document]) -> List[Document]:
        return list(self.collection.aggregate(pipeline))

    def average_price_by_genre(self) -> List[Document]:
        return self.aggregate(average_price_by_genre_pipeline())

    def author_with_most_books(self) -> List[Document]:
        return self.aggregate(author_with_most_books_pipeline())

    def count_by_decade(self) -> List[Document]:
        return self.aggregate(books_by_decade_pipeline())

    # Indexes

    @database_operation(DatabaseOperationType.INDEX)
    def create_index(self, keys: IndexKeys) -> str:
        """
        Create an index and return its name.

        Re-creating an identical index is accepted by the server; a definition
        that conflicts with an existing index raises :class:`IndexException`.
        """
        try:
            name = self.collection.create_index(keys)
        except PyMongoError as e:
            error = handle_database_error(
                e, DatabaseOperationType.INDEX, self.database_name, self.collection_name
            )
            if isinstance(error, IndexException):
                error.keys = keys
            raise error from e

        logger.info("Index created", collection=self.collection_name, index_name=name, keys=keys)
        return name

    def create_title_index(self) -> str:
        return self.create_index(TITLE_INDEX)

    def create_author_year_index(self) -> str:
        return self.create_index(AUTHOR_YEAR_INDEX)

    @database_operation(DatabaseOperationType.INDEX)
    def list_index_names(self) -> List[str]:
        return [index['name'] for index in self.collection.list_indexes()]

    # Explain

    @database_operation(DatabaseOperationType.EXPLAIN)
    def explain(self, filter_dict: Document) -> PlanSummary:
        summary = summarize_plan(self.collection.find(filter_dict).explain())
        logger.debug(
            "Query plan inspected",
            filter_fields=list(filter_dict.keys()),
            stage=summary.stage,
            index_name=summary.index_name
        )
        return summary

    def explain_title_lookup(self, title: str = '1984') -> PlanSummary:
        return self.explain(equals_filter('title', title))

    def explain_author_year_lookup(self, author: str = 'George Orwell',
                                   year: int = 1945) -> PlanSummary:
        return self.explain(author_published_after_filter(author, year))
