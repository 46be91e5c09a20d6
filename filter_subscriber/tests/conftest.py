import pytest

from filter_subscriber.test_framework.mock_provider import MockProvider


@pytest.fixture
def provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def errors():
    return []


@pytest.fixture
def on_error(errors):
    def record(error, block_number):
        errors.append((error, block_number))
    return record
