"""
SQL statements used by the workloads.

One table per storage model (`bench_common_epoch`, `bench_common_bitpack`) with
identical columns; only the meaning of `cf3` differs. Postgres has no LIMIT on
UPDATE/DELETE, so bounded writes select their ids through a subquery.
"""

from dataclasses import dataclass

from packbench.core import bitpack

INSERT_COLUMNS: tuple[str, ...] = (
    "cf3",
    "tenant_module_range",
    "other_bigint",
    "other_decimal",
    "other_varchar",
    "other_blob",
    "created_at",
    "updated_at",
    "flag_tiny",
)

COLUMN_DDL = (
    "cf3 BIGINT NOT NULL, "
    "tenant_module_range BIGINT NOT NULL, "
    "other_bigint BIGINT, "
    "other_decimal DECIMAL(18,4), "
    "other_varchar VARCHAR(255), "
    "other_blob BYTEA, "
    "created_at BIGINT, "
    "updated_at BIGINT, "
    "flag_tiny SMALLINT"
)


def table_name(model: str) -> str:
    return f"bench_common_{model}"


@dataclass(frozen=True)
class BenchStatements:
    """Statement catalog for one storage model."""

    model: str
    citus: bool = False

    @property
    def table(self) -> str:
        return table_name(self.model)

    @property
    def insert_sql(self) -> str:
        cols = ", ".join(INSERT_COLUMNS)
        params = ", ".join(f"${i}" for i in range(1, len(INSERT_COLUMNS) + 1))
        return f"INSERT INTO {self.table} ({cols}) VALUES ({params})"

    @property
    def range_update_sql(self) -> str:
        """Params: low, high, limit."""
        return (
            f"UPDATE {self.table} SET cf3 = cf3 + 1000 "
            f"WHERE id IN (SELECT id FROM {self.table} "
            f"WHERE tenant_module_range BETWEEN $1 AND $2 LIMIT $3)"
        )

    @property
    def range_delete_sql(self) -> str:
        """Params: low, high, limit."""
        return (
            f"DELETE FROM {self.table} "
            f"WHERE id IN (SELECT id FROM {self.table} "
            f"WHERE tenant_module_range BETWEEN $1 AND $2 LIMIT $3)"
        )

    @property
    def range_select_sql(self) -> str:
        """Params: low, high, limit."""
        return (
            f"SELECT id, cf3, other_varchar FROM {self.table} "
            f"WHERE tenant_module_range BETWEEN $1 AND $2 LIMIT $3"
        )

    @property
    def txn_update_sql(self) -> str:
        """Params: other_varchar, id."""
        return f"UPDATE {self.table} SET other_varchar = $1 WHERE id = $2"

    @property
    def year_expr(self) -> str:
        """Year of cf3: bit arithmetic for bitpack, to_timestamp for epoch."""
        if self.model == "bitpack":
            mask = (1 << bitpack.YEAR_BITS) - 1
            return f"((cf3 >> {bitpack.YEAR_SHIFT}) & {mask}) + {bitpack.EPOCH_YEAR}"
        return "EXTRACT(YEAR FROM to_timestamp(cf3::numeric / 1000))"

    @property
    def extract_sql(self) -> str:
        return (
            f"SELECT {self.year_expr} AS yr, COUNT(*) AS cnt FROM {self.table} "
            f"GROUP BY yr HAVING COUNT(*) > 0 ORDER BY yr"
        )

    @property
    def create_table_sql(self) -> str:
        return (
            f"CREATE TABLE IF NOT EXISTS {self.table} "
            f"(id BIGSERIAL, {COLUMN_DDL}, PRIMARY KEY ({self._primary_key}))"
        )

    @property
    def _primary_key(self) -> str:
        # Citus requires unique constraints to include the distribution column.
        if self.citus:
            return "id, tenant_module_range"
        return "id"

    @property
    def create_index_sql(self) -> str:
        return (
            f"CREATE INDEX IF NOT EXISTS {self.table}_tmr_idx "
            f"ON {self.table} (tenant_module_range)"
        )

    @property
    def truncate_sql(self) -> str:
        return f"TRUNCATE TABLE {self.table}"

    @property
    def delete_all_sql(self) -> str:
        return f"DELETE FROM {self.table}"

    @property
    def citus_distribute_sql(self) -> str:
        return f"SELECT create_distributed_table('{self.table}', 'tenant_module_range')"

    @property
    def citus_columnar_sql(self) -> str:
        return f"SELECT alter_table_set_access_method('{self.table}', 'columnar')"
