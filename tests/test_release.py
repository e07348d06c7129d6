import pytest

from app.ssm.db import engine_options
from scripts.release import release_database_url


def test_sqlite_engine_skips_pool_sizing():
    opts = engine_options("sqlite:///ssm.db", {"DB_POOL_SIZE": 20})
    assert opts == {"future": True, "pool_pre_ping": True}


def test_postgres_engine_sized_from_config():
    opts = engine_options("postgresql://u:p@db/ssm", {"DB_POOL_SIZE": 2, "DB_MAX_OVERFLOW": 3, "DB_POOL_RECYCLE": 600})
    assert opts["pool_size"] == 2
    assert opts["max_overflow"] == 3
    assert opts["pool_recycle"] == 600
    assert engine_options("postgresql://u:p@db/ssm", {})["pool_size"] == 5


def test_release_requires_database_url():
    with pytest.raises(RuntimeError):
        release_database_url({})


def test_release_refuses_sqlite_in_production():
    with pytest.raises(RuntimeError):
        release_database_url({"DATABASE_URL": "sqlite:///ssm.db", "ENV": "production"})
    assert release_database_url({"DATABASE_URL": "sqlite:///ssm.db", "ENV": "development"}) == "sqlite:///ssm.db"
