"""
Schema management for the product catalog.

Owns the DDL for the products table and its query indexes.
"""

from .connection import DatabaseConnectionPool

PRODUCTS_TABLE = "products"

CREATE_PRODUCTS_TABLE = """
    CREATE TABLE IF NOT EXISTS products (
        id BIGSERIAL PRIMARY KEY,
        name TEXT NOT NULL,
        price NUMERIC NOT NULL,
        expiration DATE NOT NULL,
        exchange_rates JSONB NOT NULL DEFAULT '{}'::jsonb,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
"""

# Indexes backing the filter and sort columns of find_many
CREATE_INDEXES = (
    "CREATE INDEX IF NOT EXISTS idx_products_name ON products (name)",
    "CREATE INDEX IF NOT EXISTS idx_products_price ON products (price)",
    "CREATE INDEX IF NOT EXISTS idx_products_expiration ON products (expiration)",
    "CREATE INDEX IF NOT EXISTS idx_products_created_at ON products (created_at)",
)


class CatalogSchema:
    """
    Creates and drops the catalog schema.

    All statements are idempotent, so create() can run on every deploy.
    """

    def __init__(self, pool: DatabaseConnectionPool):
        """
        Initialize schema manager.

        Args:
            pool: Database connection pool
        """
        self.pool = pool

    def create(self) -> None:
        """Create the products table and its indexes in one transaction."""
        with self.pool.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(CREATE_PRODUCTS_TABLE)
                for statement in CREATE_INDEXES:
                    cur.execute(statement)
            conn.commit()

    def drop(self) -> None:
        """Drop the products table (tests and local resets only)."""
        self.pool.execute_command(f"DROP TABLE IF EXISTS {PRODUCTS_TABLE}")

    def exists(self) -> bool:
        result = self.pool.execute_query(
            "SELECT to_regclass(%s) IS NOT NULL AS present",
            (PRODUCTS_TABLE,),
        )
        return bool(result and result[0]["present"])
