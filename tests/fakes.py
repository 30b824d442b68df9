"""In-memory stand-in for the Supabase client used by the service tests.

Implements the subset of the PostgREST query builder the services call
(select/insert/update/delete, eq/neq/gt/gte/lt/lte/in_/is_/not_ filters,
order/limit/range) over plain dict rows. Unique constraints raise a
postgrest APIError with code 23505, like the real database.
"""

import copy
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Any, Callable, Optional

from postgrest.exceptions import APIError

# Column defaults filled in on insert, mirroring the table schemas in app/modules/*/models.py
TABLE_DEFAULTS: dict[str, dict[str, Any]] = {
    "groups": {"type": "family", "updated_at": None},
    "group_roles": {"description": None, "permissions": {}, "is_default": False, "importance": 50, "updated_at": None},
    "memberships": {"role_name": "member", "role_id": None, "importance": 50, "custom_permissions": {}, "left_at": None},
    "profiles": {"pseudo": None, "avatar_url": None, "locale": "en", "updated_at": None},
    "tasks": {
        "description": None, "due_at": None, "required_count": 1, "is_free": False,
        "status": "open", "created_by": None, "updated_at": None,
    },
    "task_assignments": {"completed_at": None},
    "task_transfers": {
        "to_membership_id": None, "return_task_id": None, "status": "pending",
        "message": None, "resolved_at": None, "resolved_by": None,
    },
    "invitations": {"code": None, "pseudo": None, "current_uses": 0, "revoked_at": None},
    "notifications": {"data": {}, "read_at": None},
}

# Timestamp column stamped on insert, per table
CREATED_COLUMN = {"memberships": "joined_at", "task_assignments": "assigned_at"}

# (columns, applies-to-row predicate)
UNIQUE_CONSTRAINTS: dict[str, list[tuple[tuple[str, ...], Optional[Callable[[dict], bool]]]]] = {
    "group_roles": [(("group_id", "name"), None)],
    "memberships": [(("group_id", "user_id"), lambda row: row.get("left_at") is None)],
    "profiles": [(("user_id",), None), (("pseudo",), lambda row: row.get("pseudo") is not None)],
    "task_assignments": [(("task_id", "membership_id"), None)],
    "invitations": [(("code",), lambda row: row.get("code") is not None)],
}


def unique_violation(table: str, columns: tuple[str, ...]) -> APIError:
    return APIError({
        "code": "23505",
        "message": f'duplicate key value violates unique constraint "{table}_{"_".join(columns)}_key"',
        "details": None,
        "hint": None,
    })


class FakeResponse:
    def __init__(self, data: list[dict]):
        self.data = data
        self.count = len(data)


class FakeQuery:
    def __init__(self, db: "FakeSupabase", table: str):
        self.db = db
        self.table = table
        self.operation = "select"
        self.columns = "*"
        self.payload: Any = None
        self.filters: list[Callable[[dict], bool]] = []
        self.orders: list[tuple[str, bool]] = []
        self._limit: Optional[int] = None
        self._offset = 0
        self._negate_next = False

    # operations

    def select(self, columns: str = "*", **kwargs):
        self.operation = "select"
        self.columns = columns
        return self

    def insert(self, rows, **kwargs):
        self.operation = "insert"
        self.payload = rows
        return self

    def update(self, patch: dict, **kwargs):
        self.operation = "update"
        self.payload = patch
        return self

    def delete(self, **kwargs):
        self.operation = "delete"
        return self

    # filters

    def _add(self, predicate: Callable[[dict], bool]):
        if self._negate_next:
            self._negate_next = False
            self.filters.append(lambda row: not predicate(row))
        else:
            self.filters.append(predicate)
        return self

    @property
    def not_(self):
        self._negate_next = True
        return self

    def eq(self, column: str, value):
        return self._add(lambda row: row.get(column) == value)

    def neq(self, column: str, value):
        return self._add(lambda row: row.get(column) != value)

    def gt(self, column: str, value):
        return self._add(lambda row: row.get(column) is not None and row.get(column) > value)

    def gte(self, column: str, value):
        return self._add(lambda row: row.get(column) is not None and row.get(column) >= value)

    def lt(self, column: str, value):
        return self._add(lambda row: row.get(column) is not None and row.get(column) < value)

    def lte(self, column: str, value):
        return self._add(lambda row: row.get(column) is not None and row.get(column) <= value)

    def in_(self, column: str, values):
        allowed = list(values)
        return self._add(lambda row: row.get(column) in allowed)

    def is_(self, column: str, value):
        if value in ("null", None):
            return self._add(lambda row: row.get(column) is None)
        expected = {"true": True, "false": False}.get(str(value).lower(), value)
        return self._add(lambda row: row.get(column) is expected)

    # modifiers

    def order(self, column: str, desc: bool = False, **kwargs):
        self.orders.append((column, desc))
        return self

    def limit(self, size: int, **kwargs):
        self._limit = size
        return self

    def range(self, start: int, end: int, **kwargs):
        self._offset = start
        self._limit = end - start + 1
        return self

    # execution

    def _matching(self) -> list[dict]:
        return [row for row in self.db.tables.setdefault(self.table, []) if all(f(row) for f in self.filters)]

    def _project(self, row: dict) -> dict:
        if self.columns.strip() == "*":
            return copy.deepcopy(row)
        wanted = [c.strip() for c in self.columns.split(",")]
        return copy.deepcopy({c: row.get(c) for c in wanted})

    def _sorted(self, rows: list[dict]) -> list[dict]:
        # later order() calls are secondary keys, so apply them first
        for column, desc in reversed(self.orders):
            present = [r for r in rows if r.get(column) is not None]
            missing = [r for r in rows if r.get(column) is None]
            present.sort(key=lambda r: r[column], reverse=desc)
            # postgres: nulls last ascending, first descending
            rows = missing + present if desc else present + missing
        return rows

    def execute(self) -> FakeResponse:
        self.db.calls.append((self.table, self.operation))
        self.db.maybe_fail(self.table, self.operation)
        handler = getattr(self, f"_execute_{self.operation}")
        return FakeResponse(handler())

    def _execute_select(self) -> list[dict]:
        rows = self._sorted(self._matching())
        rows = rows[self._offset:]
        if self._limit is not None:
            rows = rows[:self._limit]
        return [self._project(r) for r in rows]

    def _execute_insert(self) -> list[dict]:
        rows = self.payload if isinstance(self.payload, list) else [self.payload]
        prepared = [self.db.with_defaults(self.table, row) for row in rows]
        for index, row in enumerate(prepared):
            self.db.check_unique(self.table, row, others=prepared[:index])
        self.db.tables.setdefault(self.table, []).extend(prepared)
        return copy.deepcopy(prepared)

    def _execute_update(self) -> list[dict]:
        targets = self._matching()
        for row in targets:
            candidate = {**row, **copy.deepcopy(self.payload)}
            self.db.check_unique(self.table, candidate, exclude=row)
        for row in targets:
            row.update(copy.deepcopy(self.payload))
        return copy.deepcopy(targets)

    def _execute_delete(self) -> list[dict]:
        targets = self._matching()
        ids = {id(r) for r in targets}
        self.db.tables[self.table] = [r for r in self.db.tables[self.table] if id(r) not in ids]
        return copy.deepcopy(targets)


class FakeAuthAdmin:
    def __init__(self):
        self.signed_out: list[str] = []

    def sign_out(self, token: str):
        self.signed_out.append(token)


class FakeAuth:
    """Token -> user map standing in for Supabase Auth"""

    def __init__(self):
        self.users: dict[str, SimpleNamespace] = {}
        self.admin = FakeAuthAdmin()
        self.lookups = 0

    def register(self, token: str, user_id: str, email: Optional[str] = None, name: Optional[str] = None):
        self.users[token] = SimpleNamespace(
            id=user_id,
            email=email or f"{user_id}@example.com",
            user_metadata={"name": name} if name else {},
        )

    def get_user(self, jwt: str):
        self.lookups += 1
        if jwt not in self.users:
            raise Exception("invalid JWT: unable to parse or verify signature")
        return SimpleNamespace(user=self.users[jwt])


class FakeSupabase:
    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.auth = FakeAuth()
        self.calls: list[tuple[str, str]] = []
        self._failures: list[dict] = []
        self._counter = 0
        self._clock = datetime.now(timezone.utc)

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rows(self, name: str) -> list[dict]:
        return copy.deepcopy(self.tables.get(name, []))

    def fail_on(self, table: str, operation: str, times: int = 1, after: int = 0):
        """Make the next matching call(s) raise, optionally after letting `after` calls through"""
        self._failures.append({"table": table, "operation": operation, "times": times, "skip": after})

    def maybe_fail(self, table: str, operation: str):
        for failure in self._failures:
            if failure["table"] != table or failure["operation"] != operation or failure["times"] <= 0:
                continue
            if failure["skip"] > 0:
                failure["skip"] -= 1
                return
            failure["times"] -= 1
            raise APIError({"code": "XX000", "message": f"injected {operation} failure on {table}"})

    def _next_id(self, table: str) -> str:
        self._counter += 1
        return f"{table}-{self._counter}"

    def _now(self) -> str:
        # strictly increasing so created_at ordering is deterministic
        self._clock += timedelta(milliseconds=1)
        return self._clock.isoformat()

    def with_defaults(self, table: str, row: dict) -> dict:
        stamped = {
            "id": self._next_id(table),
            "created_at": self._now(),
            **copy.deepcopy(TABLE_DEFAULTS.get(table, {})),
        }
        if table in CREATED_COLUMN:
            stamped[CREATED_COLUMN[table]] = stamped["created_at"]
        stamped.update(copy.deepcopy(row))
        return stamped

    def check_unique(self, table: str, row: dict, others: Optional[list] = None, exclude: Optional[dict] = None):
        existing = [r for r in self.tables.get(table, []) if r is not exclude] + list(others or [])
        for columns, applies in UNIQUE_CONSTRAINTS.get(table, []):
            if applies and not applies(row):
                continue
            key = tuple(row.get(c) for c in columns)
            for other in existing:
                if applies and not applies(other):
                    continue
                if tuple(other.get(c) for c in columns) == key:
                    raise unique_violation(table, columns)
