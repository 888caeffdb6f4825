import pytest

from coachdesk.errors import GatewayError, GatewayTimeout
from tests.fakes import FakeCalendar, FakeMessaging, FakeRecordStore


@pytest.fixture
def store():
    return FakeRecordStore()


@pytest.fixture
def messaging():
    return FakeMessaging()


@pytest.fixture
def calendar():
    return FakeCalendar()


@pytest.fixture
def gateway_error():
    return GatewayError("store unavailable", service="record_store")


@pytest.fixture
def gateway_timeout():
    return GatewayTimeout("LINE push_message timed out", service="line_messaging")
