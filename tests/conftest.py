import sys

import pytest_asyncio

from .repo_root import REPO_ROOT

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest_asyncio.fixture
async def db(tmp_path):
    from davmedia_backend.adapters.db import Sqlite, migrate_schema

    database = Sqlite(str(tmp_path / "scan.db"))
    res = await migrate_schema(database)
    assert res.ok, res.error
    try:
        yield database
    finally:
        await database.aclose()


@pytest_asyncio.fixture
async def services(tmp_path):
    from davmedia_backend.deps import build_services, dispose_services

    db_path = str(tmp_path / "test_services.db")
    svc_res = await build_services(db_path)
    assert svc_res.ok, svc_res.error
    svc = svc_res.data
    try:
        yield svc
    finally:
        await dispose_services(svc)
