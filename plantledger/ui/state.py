from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from pydantic import BaseModel, Field

from plantledger.domain.entities import Actor, Product, TxType
from plantledger.domain.reports import SortKey


class Preferences(BaseModel):
    inventory_type_filter: TxType | None = None
    history_product_ids: list[str] = Field(default_factory=list)
    report_sort: SortKey = "produced"


class AppSnapshot(BaseModel):
    """The part of the application state that survives a restart."""

    version: int = 1
    actor: Actor | None = None
    products: list[Product] = Field(default_factory=list)
    preferences: Preferences = Field(default_factory=Preferences)
    last_sync: datetime | None = None


@dataclass
class AppState:
    actor: Actor | None = None
    products: list[Product] = field(default_factory=list)
    preferences: Preferences = field(default_factory=Preferences)
    last_sync: datetime | None = None

    def logout(self) -> None:
        self.actor = None
        self.preferences = Preferences()

    def snapshot(self) -> str:
        return AppSnapshot(
            actor=self.actor,
            products=self.products,
            preferences=self.preferences,
            last_sync=self.last_sync,
        ).model_dump_json()

    @classmethod
    def restore(cls, data: str) -> AppState:
        snap = AppSnapshot.model_validate_json(data)
        return cls(
            actor=snap.actor,
            products=list(snap.products),
            preferences=snap.preferences,
            last_sync=snap.last_sync,
        )
