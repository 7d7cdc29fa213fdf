"""Shared fixtures for the ingestion parser tests."""

import asyncio

import pytest


PEOPLE_CSV = b"name,age,city\nJohn,30,New York\nJane,25,Los Angeles\n"

PEOPLE_ROWS = [
    {'name': 'John', 'age': '30', 'city': 'New York'},
    {'name': 'Jane', 'age': '25', 'city': 'Los Angeles'},
]


@pytest.fixture
def run():
    """Drive a coroutine to completion."""
    return asyncio.run


@pytest.fixture
def people_csv() -> bytes:
    return PEOPLE_CSV


@pytest.fixture
def people_rows() -> list:
    return [dict(row) for row in PEOPLE_ROWS]


@pytest.fixture
def key_value_csv() -> bytes:
    """Header plus 100 two-field rows."""
    lines = ["key,value"] + [f"key{i},value{i}" for i in range(100)]
    return ("\n".join(lines) + "\n").encode('utf-8')
