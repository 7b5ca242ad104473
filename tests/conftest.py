import pytest

from builders import StubBalanceOracle, StubGasOracle


@pytest.fixture
def balance_oracle():
    return StubBalanceOracle()


@pytest.fixture
def gas_oracle():
    return StubGasOracle(30.0)
