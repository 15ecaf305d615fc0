import os
import pathlib
import sys
from typing import Callable, Dict, Tuple

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import agegate`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from agegate.config import AgegateConfig, get_config_manager  # noqa: E402
from agegate.core import SECONDS_PER_DAY  # noqa: E402
from agegate.ledger.contract import SubscriptionContract  # noqa: E402
from agegate.ledger.models import CallContext  # noqa: E402
from agegate.zk.circuit import AgeCircuit, PublicInputs  # noqa: E402
from agegate.zk.keys import setup  # noqa: E402
from agegate.zk.params import generate_parameters  # noqa: E402
from agegate.zk.prover import AgeProver  # noqa: E402


# 2024-10-04, one hour past midnight UTC
TODAY = 20000
NOW = TODAY * SECONDS_PER_DAY + 3600
ADULT_DAYS = 18 * 365
ADULT_BIRTH = TODAY - 20 * 365
MINOR_BIRTH = TODAY - 16 * 365
INTERVAL = 30 * SECONDS_PER_DAY
PRICE = 100


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless AGEGATE_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    run_slow = _env_flag('AGEGATE_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set AGEGATE_RUN_SLOW=1 to enable'))


@pytest.fixture(autouse=True)
def _reset_config():
    """Each test starts from default configuration."""
    get_config_manager().reset()
    yield
    get_config_manager().reset()


@pytest.fixture(scope="session")
def params():
    return generate_parameters()


@pytest.fixture(scope="session")
def keys(params):
    return setup(params, AgeCircuit())


@pytest.fixture(scope="session")
def pk(keys):
    return keys[0]


@pytest.fixture(scope="session")
def vk(keys):
    return keys[1]


@pytest.fixture(scope="session")
def prover(pk):
    return AgeProver(pk)


@pytest.fixture(scope="session")
def prove_for(prover) -> Callable[..., bytes]:
    """Proof bytes for (binding, birth, minimum_age, current_date), cached per session."""
    cache: Dict[Tuple[str, int, int, int], bytes] = {}

    def _prove(binding: str, birth: int = ADULT_BIRTH, minimum_age: int = ADULT_DAYS, current: int = TODAY) -> bytes:
        key = (binding, birth, minimum_age, current)
        if key not in cache:
            result = prover.prove(birth, PublicInputs(minimum_age, current), binding)
            assert result.ok, result.unsatisfied
            cache[key] = result.proof
        return cache[key]

    return _prove


@pytest.fixture
def config() -> AgegateConfig:
    return AgegateConfig()


@pytest.fixture
def contract(params, vk, config) -> SubscriptionContract:
    """A deployed contract with one adult plan owned by ``owner``."""
    c = SubscriptionContract("owner", params, vk, config=config)
    c.create_plan(CallContext("owner", NOW), "adult-monthly", ADULT_DAYS, INTERVAL, PRICE, beneficiary="merchant")
    return c


@pytest.fixture
def public_inputs() -> PublicInputs:
    return PublicInputs(minimum_age=ADULT_DAYS, current_date=TODAY)
