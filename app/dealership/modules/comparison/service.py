from __future__ import annotations

from collections.abc import MutableMapping
from typing import TYPE_CHECKING, Any

from app.dealership.modules.inventory.models import Car

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


MAX_COMPARE = 3
SESSION_KEY = "comparison_car_ids"

# (label, attribute) rows of the side-by-side table
COMPARISON_FIELDS = (
    ("Make & Model", "make_model"),
    ("Year", "year"),
    ("Price", "price"),
    ("Mileage", "mileage"),
    ("Color", "color"),
    ("Fuel Type", "fuel_type"),
    ("Transmission", "transmission"),
    ("Body Type", "body_type"),
    ("Seats", "seats"),
    ("Status", "status"),
)


class ComparisonList:
    """
    Car ids picked for side-by-side comparison.

    Backed by any mutable mapping (the Flask session in requests); every
    mutation is written straight back to the store.
    """

    def __init__(self, store: MutableMapping[str, Any]):
        self._store = store
        self._ids: list[int] = []
        for raw in store.get(SESSION_KEY) or []:
            try:
                car_id = int(raw)
            except (TypeError, ValueError):
                continue
            if car_id not in self._ids:
                self._ids.append(car_id)
        del self._ids[MAX_COMPARE:]

    @property
    def car_ids(self) -> list[int]:
        return list(self._ids)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, car_id: object) -> bool:
        return car_id in self._ids

    @property
    def is_full(self) -> bool:
        return len(self._ids) >= MAX_COMPARE

    def add(self, car: Car) -> None:
        if len(self._ids) >= MAX_COMPARE:
            raise ValueError(f"You can compare up to {MAX_COMPARE} cars only")
        if car.id in self._ids:
            raise ValueError("Car is already in comparison")
        self._ids.append(car.id)
        self._save()

    def remove(self, car_id: int) -> bool:
        if car_id not in self._ids:
            return False
        self._ids.remove(car_id)
        self._save()
        return True

    def clear(self) -> None:
        self._ids = []
        self._save()

    def load_cars(self, s: "Session") -> list[Car]:
        """Cars in the order they were added; ids of deleted cars are pruned."""
        if not self._ids:
            return []
        by_id = {c.id: c for c in s.query(Car).filter(Car.id.in_(self._ids)).all()}
        missing = [i for i in self._ids if i not in by_id]
        if missing:
            self._ids = [i for i in self._ids if i in by_id]
            self._save()
        return [by_id[i] for i in self._ids]

    def _save(self) -> None:
        self._store[SESSION_KEY] = list(self._ids)


def comparison_from_session() -> ComparisonList:
    from flask import session

    return ComparisonList(session)


def comparison_value(car: Car, attr: str) -> Any:
    if attr == "make_model":
        return f"{car.make} {car.model}"
    return getattr(car, attr)
