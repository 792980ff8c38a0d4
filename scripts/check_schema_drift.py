"""Compare the ORM models against the live database schema.

Exit codes: 0 no drift, 1 drift found, 2 the check itself failed.
"""

from __future__ import annotations

import sys

from alembic.autogenerate import api as ag_api
from alembic.runtime.migration import MigrationContext
from sqlalchemy.exc import SQLAlchemyError

from prizedesk.db.engine import make_engine
from prizedesk.models import Base


def _print_ops(ops, depth: int = 0) -> None:
    for op in ops:
        print(f"{'  ' * depth}- {op}")
        nested = getattr(op, "ops", None)
        if nested:
            _print_ops(nested, depth + 1)


def main() -> int:
    engine = make_engine()
    target = engine.url.render_as_string(hide_password=True)
    try:
        with engine.connect() as connection:
            context = MigrationContext.configure(
                connection=connection,
                opts={
                    "compare_type": True,
                    "compare_server_default": True,
                    "render_as_batch": connection.dialect.name == "sqlite",
                },
            )
            upgrade_ops = ag_api.produce_migrations(context, Base.metadata).upgrade_ops
    except SQLAlchemyError as exc:
        print(f"Schema drift check could not inspect {target}: {exc}", file=sys.stderr)
        return 2

    if upgrade_ops is None:
        print(f"Schema drift check: no upgrade operations produced for {target}.")
        return 2
    if upgrade_ops.is_empty():
        print(f"Schema drift check: {target} matches the models.")
        return 0
    print(f"Schema drift check: {target} differs from the models:")
    _print_ops(upgrade_ops.ops or [])
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
