"""Pytest configuration and shared fixtures for odata-table tests."""

from typing import Any, Dict, List
from unittest.mock import patch

import pytest

from odata_table.core.config import EngineSettings
from odata_table.core.types import ColumnDescriptor, DataType


class MockSessionState(dict):
    """Mock Streamlit session_state that behaves like a dict."""
    pass


@pytest.fixture
def mock_streamlit():
    """
    Mock Streamlit's session_state for testing the rendering bridge.

    This fixture patches st.session_state to allow testing without running
    a full Streamlit server.
    """
    mock_session_state = MockSessionState()

    with patch('streamlit.session_state', mock_session_state):
        yield mock_session_state


@pytest.fixture
def settings() -> EngineSettings:
    """Settings independent of the ODATA_TABLE_* environment."""
    return EngineSettings(
        base_url="https://example.test/service/People",
        page_size=8,
        timeout_seconds=5.0,
        max_continuation_hops=1000,
    )


@pytest.fixture
def people_columns() -> List[ColumnDescriptor]:
    """Column descriptors for the people records."""
    return [
        ColumnDescriptor("UserName", "User", filterable=True, sortable=True),
        ColumnDescriptor("FirstName", "First name", filterable=True, sortable=True),
        ColumnDescriptor("LastName", "Last name", filterable=True, sortable=True),
        ColumnDescriptor("Gender", filterable=True, sortable=True),
        ColumnDescriptor("Age", data_type=DataType.NUMBER, filterable=True, sortable=True),
        ColumnDescriptor("Concurrency", data_type=DataType.NUMBER, hide=True),
    ]


@pytest.fixture
def people_records() -> List[Dict[str, Any]]:
    """Ten people, with a missing Age and duplicated last names."""
    return [
        {"UserName": "russellwhyte", "FirstName": "Russell", "LastName": "Whyte", "Gender": "Male", "Age": 30, "Concurrency": 1},
        {"UserName": "scottketchum", "FirstName": "Scott", "LastName": "Ketchum", "Gender": "Male", "Age": 9, "Concurrency": 2},
        {"UserName": "ronaldmundy", "FirstName": "Ronald", "LastName": "Mundy", "Gender": "Male", "Age": 42, "Concurrency": 3},
        {"UserName": "javieralfred", "FirstName": "Javier", "LastName": "Alfred", "Gender": "Male", "Age": 100, "Concurrency": 4},
        {"UserName": "willieashmore", "FirstName": "Willie", "LastName": "Ashmore", "Gender": "Male", "Concurrency": 5},
        {"UserName": "vincentcalabrese", "FirstName": "Vincent", "LastName": "Calabrese", "Gender": "Male", "Age": 21, "Concurrency": 6},
        {"UserName": "clydeguess", "FirstName": "Clyde", "LastName": "Guess", "Gender": "Male", "Age": 55, "Concurrency": 7},
        {"UserName": "keithpinckney", "FirstName": "Keith", "LastName": "Pinckney", "Gender": "Male", "Age": 30, "Concurrency": 8},
        {"UserName": "marshallgaray", "FirstName": "Marshall", "LastName": "Garay", "Gender": "Male", "Age": 18, "Concurrency": 9},
        {"UserName": "elainestewart", "FirstName": "Elaine", "LastName": "Stewart", "Gender": "Female", "Age": 30, "Concurrency": 10},
    ]
