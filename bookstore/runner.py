"""
Query Sequence Runner

Runs the fixed, ordered list of bookstore operations against one collection
and prints every result through the :class:`~bookstore.reporting.Reporter`:

1. CRUD: books by genre, books published after 1950, books by author, the
   price update for "1984" and the deletion of "Moby Dick"
2. Advanced queries: in-stock recent books, projection, sorting by price in
   both directions and the first page of five
3. Aggregations: average price by genre, author with most books and books
   per publication decade
4. Indexing: title and author/year indexes, then explain plans showing which
   access path the server picked

Steps run strictly in order. The first failing step aborts the rest; the error
is logged once by :func:`run` and the connection is still closed.
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import structlog
from pymongo import ASCENDING, DESCENDING

from bookstore.config.database import DatabaseConfig, create_database_config
from bookstore.data.exceptions import DatabaseException
from bookstore.data.queries import BookQueries, PlanSummary
from bookstore.data.session import database_session
from bookstore.monitoring.logging import setup_structured_logging
from bookstore.reporting import Reporter


logger = structlog.get_logger(__name__)

INDEX_SCAN_CONFIRMATION = (
    "Performance Improvement Confirmed: The query used an Index Scan (IXSCAN)."
)


@dataclass(frozen=True)
class QueryStep:
    name: str
    action: Callable[[BookQueries, Reporter], None]


def _show(label: str, fetch: Callable[[BookQueries], list]) -> Callable[[BookQueries, Reporter], None]:
    def action(queries: BookQueries, reporter: Reporter) -> None:
        reporter.render(label, fetch(queries))
    return action


def _update_price(queries: BookQueries, reporter: Reporter) -> None:
    queries.update_price('1984', 13.99)
    reporter.message('Updated price for "1984"')


def _delete_book(queries: BookQueries, reporter: Reporter) -> None:
    queries.delete_by_title('Moby Dick')
    reporter.message('Deleted "Moby Dick"')


def _create_indexes(queries: BookQueries, reporter: Reporter) -> None:
    queries.create_title_index()
    queries.create_author_year_index()
    reporter.message("Indexes created successfully")


def _report_plan(reporter: Reporter, plan: PlanSummary) -> None:
    reporter.message(f"Query Plan Stage: {plan.stage}")
    reporter.message(f"Index Used: {plan.index_name}")


def _explain_title(queries: BookQueries, reporter: Reporter) -> None:
    reporter.message('Explain plan for query on "title" (using index)')
    _report_plan(reporter, queries.explain_title_lookup('1984'))


def _explain_author_year(queries: BookQueries, reporter: Reporter) -> None:
    reporter.message('Explain plan for query on "author" and "published_year" (using compound index)')
    plan = queries.explain_author_year_lookup('George Orwell', 1945)
    _report_plan(reporter, plan)
    if plan.top_level_index_scan:
        reporter.message(INDEX_SCAN_CONFIRMATION)


def build_steps() -> List[QueryStep]:
    """The query sequence, in execution order."""
    return [
        QueryStep('find_by_genre', _show(
            'Books in Fiction genre:', lambda q: q.find_by_genre('Fiction'))),
        QueryStep('find_published_after', _show(
            'Books published after 1950:', lambda q: q.find_published_after(1950))),
        QueryStep('find_by_author', _show(
            'Books by George Orwell:', lambda q: q.find_by_author('George Orwell'))),
        QueryStep('update_price', _update_price),
        QueryStep('delete_by_title', _delete_book),
        QueryStep('find_in_stock_published_after', _show(
            'In-stock books published after 2010:', lambda q: q.find_in_stock_published_after(2010))),
        QueryStep('find_title_author_price', _show(
            'Only title, author, price:', lambda q: q.find_title_author_price())),
        QueryStep('sort_by_price_ascending', _show(
            'Books sorted by price (ascending):', lambda q: q.sort_by_price(ASCENDING))),
        QueryStep('sort_by_price_descending', _show(
            'Books sorted by price (descending):', lambda q: q.sort_by_price(DESCENDING))),
        QueryStep('first_page', _show(
            'First 5 books:', lambda q: q.first_page(5))),
        QueryStep('average_price_by_genre', _show(
            'Average price by genre:', lambda q: q.average_price_by_genre())),
        QueryStep('author_with_most_books', _show(
            'Author with most books:', lambda q: q.author_with_most_books())),
        QueryStep('count_by_decade', _show(
            'Books grouped by publication decade:', lambda q: q.count_by_decade())),
        QueryStep('create_indexes', _create_indexes),
        QueryStep('explain_title_lookup', _explain_title),
        QueryStep('explain_author_year_lookup', _explain_author_year),
    ]


def run_steps(queries: BookQueries, reporter: Reporter,
              steps: Optional[Sequence[QueryStep]] = None) -> None:
    """
    Execute ``steps`` in order. An exception from any step propagates
    immediately and the remaining steps are not run.
    """
    for step in steps if steps is not None else build_steps():
        logger.debug("Running query step", step=step.name)
        step.action(queries, reporter)


def run(config: Optional[DatabaseConfig] = None, reporter: Optional[Reporter] = None) -> bool:
    """
    Open a session, run the whole query sequence and close the session.

    Database errors are logged here and not re-raised.

    Returns:
        True if every step completed, False if a database error was logged
    """
    reporter = reporter or Reporter()
    opened = False

    try:
        config = config or create_database_config()
        with database_session(config) as handle:
            opened = True
            reporter.message("Successfully connected to MongoDB")
            run_steps(BookQueries(handle.collection), reporter)
        return True
    except DatabaseException as e:
        logger.error("Query sequence aborted", **e.to_dict())
        return False
    finally:
        if opened:
            reporter.message("Connection closed")
        if config is not None and config.command_listener is not None:
            logger.info("MongoDB command summary", commands=config.command_listener.snapshot())


def main() -> int:
    """Console entry point."""
    setup_structured_logging()
    run()
    # TODO: exit non-zero when run() returns False
    return 0
