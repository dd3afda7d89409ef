import logging

from latchorm.core import BooleanField, IntegerField, Model, StringField, VersionField
from latchorm.dialects import PostgresDialect, SQLiteDialect
from latchorm.schema import SchemaBuilder

dialect = SQLiteDialect()
builder = SchemaBuilder(dialect)


class Crate(Model):
    label = StringField(nullable=False, max_length=40)
    weight = IntegerField(default=0)
    fragile = BooleanField()
    version = VersionField()


class Shelf(Model):
    code = StringField(nullable=False, unique=True, default="A'1")

    class Meta:
        table = "shelves"
        schema = "warehouse"


def test_create_table_sql():
    sql = builder.create_table_sql(Crate)
    expected = (
        'CREATE TABLE IF NOT EXISTS "crate" ('
        '"id" VARCHAR(36) NOT NULL PRIMARY KEY, '
        '"label" VARCHAR(40) NOT NULL, '
        '"weight" INTEGER DEFAULT 0, '
        '"fragile" BOOLEAN NOT NULL DEFAULT 0, '
        '"version" INTEGER NOT NULL DEFAULT 0)'
    )
    assert sql == expected


def test_schema_qualified_table_and_escaped_default():
    sql = SchemaBuilder(PostgresDialect()).create_table_sql(Shelf)
    assert sql.startswith('CREATE TABLE IF NOT EXISTS "warehouse"."shelves" (')
    assert '"code" VARCHAR(255) NOT NULL UNIQUE DEFAULT \'A\'\'1\'' in sql


def test_drop_table_sql_logs_warning(caplog):
    caplog.set_level(logging.WARNING, logger="latchorm.schema.builder")
    assert builder.drop_table_sql(Crate) == 'DROP TABLE IF EXISTS "crate"'
    assert any("DROP TABLE generated" in record.message for record in caplog.records)


def test_create_all_executes_and_commits():
    class RecordingAdapter:
        def __init__(self):
            self.statements = []
            self.commits = 0

        def execute(self, sql, params=None):
            self.statements.append(sql)

        def commit(self):
            self.commits += 1

    adapter = RecordingAdapter()
    statements = builder.create_all(adapter, (Crate,))
    assert adapter.statements == statements
    assert adapter.commits == 1
