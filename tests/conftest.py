from datetime import datetime
from pathlib import Path

import pytest

from plantledger.adapters.clock import FrozenClock
from plantledger.adapters.memory_backend import InMemoryLedgerBackend
from plantledger.domain.entities import Actor, Product
from plantledger.domain.policy import PolicyEngine
from plantledger.rules.loader import load_rules
from plantledger.ui.context import ServiceContext

RULES_PATH = Path(__file__).parent.parent / "rules.yaml"


@pytest.fixture
def rules():
    """The real rules file shipped at the project root."""
    return load_rules(RULES_PATH)


@pytest.fixture
def policy(rules):
    return PolicyEngine(rules.rbac)


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 10, 18, 10, 0))


@pytest.fixture
def backend(clock):
    return InMemoryLedgerBackend(clock)


@pytest.fixture
def admin():
    return Actor(id="admin-1", role="admin", display_name="Admin")


@pytest.fixture
def operator():
    return Actor(id="user-1", role="user", display_name="Operator")


@pytest.fixture
def viewer():
    return Actor(id="viewer-1", role="viewer", display_name="Viewer")


@pytest.fixture
def catalog(backend):
    """Two products: an integer-counted one and a weighed one."""
    backend.add_product("Heart", "UN", meta_per_animal=2, product_id="p-heart")
    backend.add_product("Liver", "KG", meta_per_animal=1.5, product_id="p-liver")
    return {
        "p-heart": Product(id="p-heart", name="Heart", unit="UN", meta_per_animal=2),
        "p-liver": Product(id="p-liver", name="Liver", unit="KG", meta_per_animal=1.5),
    }


@pytest.fixture
def ctx(rules, backend, clock, catalog, operator):
    """Full application context over the in-memory backend, operator signed in."""
    context = ServiceContext.create(rules, backend=backend, clock=clock)
    context.sign_in(operator)
    return context
