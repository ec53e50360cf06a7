import pytest
from vault_fakes import FakeCredential, FakeVaultSession

from core.resilience.retry import RetryConfig


@pytest.fixture
def session():
    return FakeVaultSession()


@pytest.fixture
def credential():
    return FakeCredential()


@pytest.fixture
def fast_retry():
    return RetryConfig(max_attempts=3, base_delay=0.001, max_delay=0.001)
