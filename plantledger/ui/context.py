from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from plantledger.adapters.clock import SystemClock
from plantledger.adapters.snapshot_store import JsonSnapshotStore
from plantledger.domain.entities import Actor
from plantledger.domain.policy import PolicyEngine
from plantledger.domain.validation import TransactionValidator
from plantledger.ports.backend import LedgerBackendPort
from plantledger.ports.clock import ClockPort
from plantledger.rules.models import LedgerRules
from plantledger.services.ledger import LedgerService
from plantledger.services.optimistic import OptimisticCoordinator
from plantledger.ui.state import AppState

logger = logging.getLogger(__name__)


@dataclass
class ServiceContext:
    """Explicitly owned application context, passed to every screen model."""

    rules: LedgerRules
    policy: PolicyEngine
    clock: ClockPort
    backend: LedgerBackendPort
    ledger: LedgerService
    validator: TransactionValidator
    coordinator: OptimisticCoordinator
    app_state: AppState
    snapshot_store: JsonSnapshotStore | None = None

    @classmethod
    def create(
        cls,
        rules: LedgerRules,
        backend: LedgerBackendPort | None = None,
        clock: ClockPort | None = None,
        snapshot_path: str | Path | None = None,
    ) -> ServiceContext:
        logging.getLogger("plantledger").setLevel(rules.ops.log_level.upper())

        if backend is None:
            from plantledger.adapters.postgrest import PostgrestLedgerBackend
            from plantledger.app_shell.config import backend_settings, validate_ops_rules

            validate_ops_rules(rules)
            url, key = backend_settings(rules)
            backend = PostgrestLedgerBackend(
                url, key, timeout=rules.backend.timeout_seconds, timezone=rules.ops.timezone
            )

        clock = clock or SystemClock(rules.ops.timezone)
        policy = PolicyEngine(rules.rbac)
        ledger = LedgerService(backend, policy, clock, rules)
        validator = TransactionValidator(policy, rules.inventory, ledger.units)
        coordinator = OptimisticCoordinator(ledger, validator)

        store = JsonSnapshotStore(snapshot_path) if snapshot_path else None
        app_state = AppState()
        if store is not None:
            data = store.load()
            if data:
                app_state = AppState.restore(data)
                # cached catalog until the first load replaces it
                ledger.inventory.products = {p.id: p for p in app_state.products}
                logger.info("Restored snapshot for %s", app_state.actor.id if app_state.actor else "anonymous")

        return cls(
            rules=rules,
            policy=policy,
            clock=clock,
            backend=backend,
            ledger=ledger,
            validator=validator,
            coordinator=coordinator,
            app_state=app_state,
            snapshot_store=store,
        )

    def sign_in(self, actor: Actor) -> None:
        self.app_state.actor = actor

    def sign_out(self) -> None:
        self.app_state.logout()
        if self.snapshot_store is not None:
            self.snapshot_store.clear()

    def persist(self) -> None:
        """Write the serializable part of the application state."""
        self.app_state.products = list(self.ledger.inventory.products.values())
        self.app_state.last_sync = self.clock.now()
        if self.snapshot_store is not None:
            self.snapshot_store.save(self.app_state.snapshot())
