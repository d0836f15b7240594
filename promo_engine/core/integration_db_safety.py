from __future__ import annotations

import re
from dataclasses import dataclass

from sqlalchemy.engine import make_url

TEST_DB_NAME_RE = re.compile(r"test", re.IGNORECASE)
ALLOWED_LOCAL_HOSTS = frozenset(
    {
        "localhost",
        "127.0.0.1",
        "::1",
        "postgres",
        "promo_engine_postgres",
    }
)


@dataclass(frozen=True, slots=True)
class IntegrationDbVerdict:
    is_safe: bool
    reason: str
    database_name: str
    host: str


def _first_violation(*, backend: str, db_name: str, host: str) -> str | None:
    if backend != "postgresql":
        return "Integration tests run only against PostgreSQL."
    if not db_name:
        return "Database name is empty."
    if TEST_DB_NAME_RE.search(db_name) is None:
        return "Database name must contain 'test'."
    if host not in ALLOWED_LOCAL_HOSTS:
        return f"Host '{host}' is not a local integration-test host."
    return None


def assess_integration_db(database_url: str) -> IntegrationDbVerdict:
    parsed = make_url(database_url)
    db_name = (parsed.database or "").strip()
    host = (parsed.host or "").strip().lower()
    violation = _first_violation(
        backend=parsed.get_backend_name(),
        db_name=db_name,
        host=host,
    )
    return IntegrationDbVerdict(
        is_safe=violation is None,
        reason=violation or "ok",
        database_name=db_name,
        host=host,
    )


def assert_safe_integration_db(database_url: str) -> None:
    verdict = assess_integration_db(database_url)
    if verdict.is_safe:
        return

    raise RuntimeError(
        "Refusing to run integration tests that truncate tables.\n"
        f"Reason: {verdict.reason}\n"
        f"Resolved DB: name='{verdict.database_name}' host='{verdict.host}'\n"
        "Use a dedicated local PostgreSQL test DB, e.g. 'promo_engine_test'."
    )
