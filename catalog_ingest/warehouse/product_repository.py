"""
Catalog reads and writes against the products table.

The write side (clear, insert) is used by the batch writer; the read side
(find_many, count) is the query collaborator called by the API layer.
"""

import json
from typing import Any, Iterable

from psycopg.types.json import Jsonb

from catalog_ingest.core.models import Product, ProductFilter, ProductPage, SortSpec
from catalog_ingest.observability.logger import get_logger

from .connection import DatabaseConnectionPool

logger = get_logger(__name__)

MAX_PAGE_SIZE = 100
QUERY_CACHE_PREFIX = "products:"

INSERT_PRODUCT = """
    INSERT INTO products (name, price, expiration, exchange_rates)
    VALUES (%(name)s, %(price)s, %(expiration)s, %(exchange_rates)s)
"""


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def clamp_pagination(page: int, limit: int) -> tuple[int, int]:
    """Clamp page to >= 1 and limit to [1, MAX_PAGE_SIZE]."""
    return max(1, page), max(1, min(limit, MAX_PAGE_SIZE))


def build_where(filters: ProductFilter | None) -> tuple[str, dict[str, Any]]:
    """
    Build the WHERE clause for a filter.

    Returns:
        (clause, params) where clause is "" when no filter applies
    """
    if filters is None:
        return "", {}

    conditions: list[str] = []
    params: dict[str, Any] = {}

    if filters.name:
        conditions.append("name ILIKE %(name_pattern)s ESCAPE '\\'")
        params["name_pattern"] = f"%{_escape_like(filters.name)}%"
    if filters.min_price is not None:
        conditions.append("price >= %(min_price)s")
        params["min_price"] = filters.min_price
    if filters.max_price is not None:
        conditions.append("price <= %(max_price)s")
        params["max_price"] = filters.max_price
    if filters.min_expiration is not None:
        conditions.append("expiration >= %(min_expiration)s")
        params["min_expiration"] = filters.min_expiration

    if not conditions:
        return "", params
    return "WHERE " + " AND ".join(conditions), params


class ProductRepository:
    """
    Data access for the products table.

    Query results can be cached (Redis, JSON values) for a short TTL. Any
    write through this repository invalidates the query cache.
    """

    def __init__(self, pool: DatabaseConnectionPool, cache=None, cache_ttl_seconds: int = 15):
        """
        Initialize the repository.

        Args:
            pool: Database connection pool
            cache: Optional RedisCache for query results
            cache_ttl_seconds: Query cache TTL (0 disables caching)
        """
        self.pool = pool
        self.cache = cache
        self.cache_ttl_seconds = cache_ttl_seconds

    # =======================
    # WRITE SIDE
    # =======================

    def clear(self, conn=None) -> int:
        """
        Delete every product.

        Args:
            conn: Connection to run on; a pooled connection is used and
                committed when omitted

        Returns:
            Number of rows deleted
        """
        if conn is None:
            deleted = self.pool.execute_command("DELETE FROM products")
        else:
            with conn.cursor() as cur:
                cur.execute("DELETE FROM products")
                deleted = cur.rowcount
        self.invalidate_cache()
        return deleted

    def insert_many(self, conn, rows: list[dict[str, Any]]) -> int:
        """
        Insert rows on the given connection in a single executemany.

        The caller owns the transaction.
        """
        with conn.cursor() as cur:
            cur.executemany(INSERT_PRODUCT, [self._adapt(row) for row in rows])
        return len(rows)

    def insert_one(self, conn, row: dict[str, Any]) -> None:
        with conn.cursor() as cur:
            cur.execute(INSERT_PRODUCT, self._adapt(row))

    @staticmethod
    def _adapt(row: dict[str, Any]) -> dict[str, Any]:
        return {**row, "exchange_rates": Jsonb(row["exchange_rates"])}

    # =======================
    # READ SIDE
    # =======================

    def find_many(
        self,
        filters: ProductFilter | None = None,
        sort: SortSpec | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> ProductPage:
        """
        Return one page of products matching the filters.

        Args:
            filters: Optional name/price/expiration filters
            sort: Sort field and direction (defaults to created_at asc)
            page: 1-based page number (clamped to >= 1)
            limit: Page size (clamped to [1, MAX_PAGE_SIZE])

        Returns:
            ProductPage with the page of records and the total match count
        """
        sort = sort or SortSpec()
        page, limit = clamp_pagination(page, limit)

        cache_key = self._cache_key(filters, sort, page, limit)
        cached = self._cache_get(cache_key)
        if cached is not None:
            return ProductPage.model_validate(cached)

        where, params = build_where(filters)

        total_rows = self.pool.execute_query(
            f"SELECT COUNT(*) AS total FROM products {where}", params
        )
        total = total_rows[0]["total"] if total_rows else 0

        # sort.field is validated against SORTABLE_FIELDS by SortSpec
        direction = "DESC" if sort.order == "desc" else "ASC"
        query = f"""
            SELECT id, name, price, expiration, exchange_rates, created_at
            FROM products
            {where}
            ORDER BY {sort.field} {direction}, id {direction}
            LIMIT %(limit)s OFFSET %(offset)s
        """
        rows = self.pool.execute_query(
            query, {**params, "limit": limit, "offset": (page - 1) * limit}
        )

        result = ProductPage(
            records=[Product(**row) for row in rows],
            total=total,
            page=page,
            limit=limit,
        )
        self._cache_set(cache_key, result)
        return result

    def count(self) -> int:
        result = self.pool.execute_query("SELECT COUNT(*) AS total FROM products")
        return result[0]["total"] if result else 0

    # =======================
    # QUERY CACHE
    # =======================

    def _cache_enabled(self) -> bool:
        return self.cache is not None and self.cache_ttl_seconds > 0

    def _cache_key(
        self, filters: ProductFilter | None, sort: SortSpec, page: int, limit: int
    ) -> str:
        filter_part = json.dumps(
            filters.model_dump(mode="json") if filters else {}, sort_keys=True
        )
        return f"{QUERY_CACHE_PREFIX}{filter_part}:{sort.field}:{sort.order}:{page}:{limit}"

    def _cache_get(self, key: str) -> Any:
        if not self._cache_enabled():
            return None
        return self.cache.get(key)

    def _cache_set(self, key: str, page: ProductPage) -> None:
        if self._cache_enabled():
            self.cache.set(key, page.model_dump(mode="json"), ttl=self.cache_ttl_seconds)

    def invalidate_cache(self) -> None:
        if self.cache is not None:
            removed = self.cache.delete_pattern(f"{QUERY_CACHE_PREFIX}*")
            if removed:
                logger.debug("Invalidated query cache", extra={"keys": removed})
