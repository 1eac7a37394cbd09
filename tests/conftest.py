"""Shared fixtures for the store and facade tests.

Every test gets a fresh temp-file SQLite DatabaseManager that is
already initialised, so tests never share state.
"""
import asyncio
import inspect
import os
import shutil
import tempfile
from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from business.customer import Customer
from database import DatabaseManager


@pytest.fixture
def db_url():
    """Yield a sqlite URL pointing at a fresh temp directory."""
    temp_dir = tempfile.mkdtemp(prefix="db-tests-")
    try:
        yield f"sqlite:///{os.path.join(temp_dir, 'test.db')}"
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


@pytest_asyncio.fixture
async def temp_db(db_url):
    """Yield an initialised DatabaseManager bound to a temp SQLite database."""
    manager = DatabaseManager(database_url=db_url)
    await manager.init()
    try:
        yield manager
    finally:
        await manager.close()


@pytest.fixture
def sample_datetime():
    """Stable datetime value for deterministic tests."""
    return datetime(2024, 1, 28, 10, 0, 0)


def make_customer(customer_id, name="Ali Khan", phone="0799123456",
                  created_at=None, **fields):
    """Helper: build a valid customer with an explicit id and creation time."""
    customer = Customer.create(name, phone)
    customer.id = customer_id
    if created_at is not None:
        customer.created_at = created_at
        customer.updated_at = created_at
    for key, value in fields.items():
        setattr(customer, key, value)
    return customer


def days_ago(days):
    """Helper: a fixed point in time `days` before the sample datetime."""
    return datetime(2024, 1, 28, 10, 0, 0) - timedelta(days=days)


async def wait_for(predicate, timeout=5.0, interval=0.02):
    """Helper: poll `predicate` (sync or async) until it is truthy or the timeout passes."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        result = predicate()
        if inspect.isawaitable(result):
            result = await result
        if result:
            return True
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(interval)
