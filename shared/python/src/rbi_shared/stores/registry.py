"""
stores/registry.py — The Registry Store: households and residents.

Every write runs in one DuckDB transaction together with the derivation it
triggers, so a resident is never stored with stale derived fields and a
household's aggregates always match its live members:

  resident create/update   -> that resident's rules, then its household
  move between households  -> both households, same transaction
  deactivate/delete        -> the household it left

A resident's barangay_code is denormalized from its household and must always
equal it; the store copies it on every household assignment and cascades it
when a household's address moves.

Usage:
    store = RegistryStore(db)
    hh = store.create_household({"code": "HH-0001", "barangay_code": "1375010001"})
    r = store.create_resident({..., "household_code": "HH-0001"})
    store.move_resident(r.id, "HH-0002")
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Mapping
from contextlib import AbstractContextManager
from datetime import date
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from rbi_shared.db import Database, db_now
from rbi_shared.derivation.engine import DerivationEngine
from rbi_shared.derivation.rules import DERIVED_HOUSEHOLD_FIELDS, DERIVED_RESIDENT_FIELDS
from rbi_shared.errors import ConstraintViolation, MalformedInput, NotFound
from rbi_shared.models.registry import (
    Household,
    HouseholdCreate,
    Resident,
    ResidentCreate,
    ResidentUpdate,
)
from rbi_shared.stores.geography import GeographyStore
from rbi_shared.time_utils import today

log = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)

# Keys callers may never write; derived values and bookkeeping columns
PROTECTED_RESIDENT_FIELDS = frozenset(
    {*DERIVED_RESIDENT_FIELDS, "derived_as_of", "id", "is_active", "created_at", "updated_at"}
)
PROTECTED_HOUSEHOLD_FIELDS = frozenset(
    {*DERIVED_HOUSEHOLD_FIELDS, "head_resident_id", "is_active", "created_at", "updated_at"}
)

HOUSEHOLD_ADDRESS_FIELDS = frozenset(
    {"barangay_code", "house_number", "street_name", "subdivision", "zip_code"}
)

# Resident columns that feed household aggregates
HOUSEHOLD_INPUT_FIELDS = frozenset({"salary", "is_migrant", "last_name"})

_NOT_NULL_RESIDENT_FIELDS = frozenset(
    {"first_name", "last_name", "birth_date", "sex", "has_disability", "is_migrant"}
)


def _validate(model: type[M], payload: Mapping[str, Any] | M, protected: frozenset[str]) -> M:
    if isinstance(payload, model):
        return payload
    smuggled = sorted(protected & set(payload))
    if smuggled:
        raise MalformedInput(
            f"derived or system fields cannot be written: {', '.join(smuggled)}",
            fields=smuggled,
        )
    try:
        return model.model_validate(dict(payload))
    except ValidationError as exc:
        raise MalformedInput(
            f"invalid {model.__name__} payload",
            errors=exc.errors(include_url=False, include_context=False, include_input=False),
        ) from exc


class RegistryStore:
    """Households and residents with synchronous derivation on every write."""

    def __init__(
        self,
        db: Database,
        geography: GeographyStore | None = None,
        engine: DerivationEngine | None = None,
        clock: Callable[[], date] = today,
    ) -> None:
        self._db = db
        self.geography = geography or GeographyStore(db)
        self.engine = engine or DerivationEngine()
        self._clock = clock

    # ------------------------------------------------------------------
    # Households
    # ------------------------------------------------------------------

    def get_household(self, code: str) -> Household:
        row = self._db.fetch_one("SELECT * FROM households WHERE code = ?", [code])
        if row is None:
            raise NotFound(f"household {code} not found", code=code)
        return Household.from_db_row(row)

    def create_household(self, payload: Mapping[str, Any] | HouseholdCreate) -> Household:
        """
        Raises:
            MalformedInput:      bad payload.
            ConstraintViolation: duplicate code, or a barangay that does not resolve.
        """
        data = _validate(HouseholdCreate, payload, PROTECTED_HOUSEHOLD_FIELDS)
        with self._db.transaction():
            if self._db.fetch_one("SELECT code FROM households WHERE code = ?", [data.code]):
                raise ConstraintViolation(f"household {data.code} already exists", code=data.code)
            self._require_barangay(data.barangay_code)
            now = db_now()
            values = {
                **data.model_dump(),
                **self.engine.household_aggregates([], None),
                "created_at": now,
                "updated_at": now,
            }
            self._insert("households", values)
            household = self.get_household(data.code)
        log.info("household_created", code=data.code, barangay_code=data.barangay_code)
        return household

    def update_household_address(self, code: str, **fields: Any) -> Household:
        """
        Change address details. A barangay change cascades to every member's
        denormalized barangay_code in the same transaction.
        """
        unknown = sorted(set(fields) - HOUSEHOLD_ADDRESS_FIELDS)
        if unknown:
            raise MalformedInput(f"not household address fields: {', '.join(unknown)}", fields=unknown)
        if "barangay_code" in fields and not fields["barangay_code"]:
            raise MalformedInput("barangay_code cannot be cleared", code=code)

        with self._db.transaction():
            household = self.get_household(code)
            new_barangay = fields.get("barangay_code")
            moved = new_barangay is not None and new_barangay != household.barangay_code
            if moved:
                self._require_barangay(new_barangay)
            if fields:
                self._update("households", "code", code, {**fields, "updated_at": db_now()})
            if moved:
                self._db.execute(
                    "UPDATE residents SET barangay_code = ?, updated_at = ? WHERE household_code = ?",
                    [new_barangay, db_now(), code],
                )
                log.info(
                    "household_relocated",
                    code=code,
                    old=household.barangay_code,
                    new=new_barangay,
                )
            return self.get_household(code)

    def set_household_head(self, code: str, resident_id: str) -> Household:
        """The head must be an active member of the household."""
        with self._db.transaction():
            self.get_household(code)
            resident = self.get_resident(resident_id)
            if resident.household_code != code or not resident.is_active:
                raise ConstraintViolation(
                    f"resident {resident_id} is not an active member of household {code}",
                    code=code,
                    resident_id=resident_id,
                )
            self._update(
                "households", "code", code, {"head_resident_id": resident_id, "updated_at": db_now()}
            )
            return self._recompute_household(code)

    def delete_household(self, code: str) -> None:
        with self._db.transaction():
            self.get_household(code)
            members = int(
                self._db.fetch_value(
                    "SELECT COUNT(*) FROM residents WHERE household_code = ?", [code]
                )
            )
            if members:
                raise ConstraintViolation(
                    f"household {code} still has {members} resident(s)",
                    code=code,
                    members=members,
                )
            self._db.execute("DELETE FROM households WHERE code = ?", [code])
        log.info("household_deleted", code=code)

    def list_household_members(self, code: str, *, include_inactive: bool = False) -> list[Resident]:
        self.get_household(code)
        sql = "SELECT * FROM residents WHERE household_code = ?"
        if not include_inactive:
            sql += " AND is_active"
        rows = self._db.fetch_all(sql + " ORDER BY last_name, first_name, id", [code])
        return [Resident.from_db_row(row) for row in rows]

    def recompute_household(self, code: str) -> Household:
        with self._db.transaction():
            return self._recompute_household(code)

    # ------------------------------------------------------------------
    # Residents
    # ------------------------------------------------------------------

    def get_resident(self, resident_id: str) -> Resident:
        row = self._db.fetch_one("SELECT * FROM residents WHERE id = ?", [resident_id])
        if row is None:
            raise NotFound(f"resident {resident_id} not found", id=resident_id)
        return Resident.from_db_row(row)

    def create_resident(
        self,
        payload: Mapping[str, Any] | ResidentCreate,
        *,
        as_of: date | None = None,
    ) -> Resident:
        """
        Insert a resident with its derived fields computed at *as_of*.

        Raises:
            MalformedInput:      bad payload, derived fields supplied, or no barangay.
            ConstraintViolation: unknown household, unresolvable barangay, or a
                                 barangay that disagrees with the household's.
        """
        data = _validate(ResidentCreate, payload, PROTECTED_RESIDENT_FIELDS)
        as_of = as_of or self._clock()
        with self._db.transaction():
            values = data.model_dump()
            values["barangay_code"] = self._barangay_for(
                data.household_code, data.barangay_code
            )
            values["id"] = str(uuid.uuid4())
            values["is_active"] = True
            values.update(self.engine.evaluate_resident(values, as_of))
            now = db_now()
            values["created_at"] = now
            values["updated_at"] = now
            self._insert("residents", values)
            if data.household_code:
                self._recompute_household(data.household_code)
            resident = self.get_resident(values["id"])
        log.info(
            "resident_created",
            id=resident.id,
            household_code=resident.household_code,
            barangay_code=resident.barangay_code,
        )
        return resident

    def update_resident(
        self,
        resident_id: str,
        payload: Mapping[str, Any] | ResidentUpdate,
        *,
        as_of: date | None = None,
    ) -> Resident:
        """
        Apply a partial update and re-run the rules that read the changed
        fields (plus the time-dependent ones).
        """
        data = _validate(ResidentUpdate, payload, PROTECTED_RESIDENT_FIELDS | {"household_code"})
        fields = data.model_dump(exclude_unset=True)
        cleared = sorted(name for name in _NOT_NULL_RESIDENT_FIELDS if name in fields and fields[name] is None)
        if cleared:
            raise MalformedInput(f"required fields cannot be cleared: {', '.join(cleared)}", fields=cleared)
        as_of = as_of or self._clock()

        with self._db.transaction():
            current = self.get_resident(resident_id)
            row = current.model_dump()
            if "barangay_code" in fields:
                fields["barangay_code"] = self._barangay_for(
                    current.household_code, fields["barangay_code"]
                )
            changed = {name for name, value in fields.items() if row.get(name) != value}
            if not changed:
                return current
            row.update(fields)
            derived = self.engine.reevaluate(row, changed, as_of)
            self._update(
                "residents",
                "id",
                resident_id,
                {**{name: fields[name] for name in changed}, **derived, "updated_at": db_now()},
            )
            if current.household_code and changed & HOUSEHOLD_INPUT_FIELDS:
                self._recompute_household(current.household_code)
            resident = self.get_resident(resident_id)
        log.info("resident_updated", id=resident_id, fields=sorted(changed))
        return resident

    def move_resident(self, resident_id: str, household_code: str | None) -> Resident:
        """
        Reassign a resident to another household (or to none). Both the old
        and the new household are recomputed in the same transaction.
        """
        with self._db.transaction():
            current = self.get_resident(resident_id)
            old_code = current.household_code
            if old_code == household_code:
                return current
            values: dict[str, Any] = {"household_code": household_code, "updated_at": db_now()}
            if household_code is not None:
                target = self._require_household(household_code)
                values["barangay_code"] = target.barangay_code
            self._update("residents", "id", resident_id, values)
            if old_code:
                self._release_head(old_code, resident_id)
                self._recompute_household(old_code)
            if household_code:
                self._recompute_household(household_code)
            resident = self.get_resident(resident_id)
        log.info("resident_moved", id=resident_id, old=old_code, new=household_code)
        return resident

    def deactivate_resident(self, resident_id: str) -> Resident:
        with self._db.transaction():
            current = self.get_resident(resident_id)
            if not current.is_active:
                return current
            self._update("residents", "id", resident_id, {"is_active": False, "updated_at": db_now()})
            if current.household_code:
                self._release_head(current.household_code, resident_id)
                self._recompute_household(current.household_code)
            resident = self.get_resident(resident_id)
        log.info("resident_deactivated", id=resident_id)
        return resident

    def delete_resident(self, resident_id: str) -> None:
        with self._db.transaction():
            current = self.get_resident(resident_id)
            self._db.execute("DELETE FROM residents WHERE id = ?", [resident_id])
            if current.household_code:
                self._release_head(current.household_code, resident_id)
                self._recompute_household(current.household_code)
        log.info("resident_deleted", id=resident_id)

    # ------------------------------------------------------------------
    # Sweep support
    # ------------------------------------------------------------------

    def transaction(self) -> AbstractContextManager[Database]:
        return self._db.transaction()

    def resident_batch(self, after_id: str | None, limit: int) -> list[dict[str, Any]]:
        """Next *limit* resident rows ordered by id, strictly after *after_id*."""
        if after_id is None:
            return self._db.fetch_all("SELECT * FROM residents ORDER BY id LIMIT ?", [limit])
        return self._db.fetch_all(
            "SELECT * FROM residents WHERE id > ? ORDER BY id LIMIT ?", [after_id, limit]
        )

    def save_derived(self, resident_id: str, derived: Mapping[str, Any]) -> None:
        """Persist engine output for one resident; only derived columns are accepted."""
        allowed = set(DERIVED_RESIDENT_FIELDS) | {"derived_as_of"}
        stray = sorted(set(derived) - allowed)
        if stray:
            raise MalformedInput(f"not derived fields: {', '.join(stray)}", fields=stray)
        self._update("residents", "id", resident_id, {**derived, "updated_at": db_now()})

    def count_residents(self) -> int:
        return int(self._db.fetch_value("SELECT COUNT(*) FROM residents"))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_barangay(self, barangay_code: str) -> None:
        try:
            self.geography.resolve_hierarchy(barangay_code)
        except NotFound as exc:
            raise ConstraintViolation(
                f"barangay {barangay_code} does not resolve", barangay_code=barangay_code
            ) from exc

    def _require_household(self, code: str) -> Household:
        try:
            return self.get_household(code)
        except NotFound as exc:
            raise ConstraintViolation(f"household {code} does not exist", code=code) from exc

    def _barangay_for(self, household_code: str | None, barangay_code: str | None) -> str:
        """The barangay a resident must carry, given its household assignment."""
        if household_code:
            household = self._require_household(household_code)
            if barangay_code and barangay_code != household.barangay_code:
                raise ConstraintViolation(
                    f"barangay {barangay_code} disagrees with household "
                    f"{household_code} ({household.barangay_code})",
                    barangay_code=barangay_code,
                    household_code=household_code,
                )
            return household.barangay_code
        if not barangay_code:
            raise MalformedInput("barangay_code is required for a resident without a household")
        self._require_barangay(barangay_code)
        return barangay_code

    def _release_head(self, code: str, resident_id: str) -> None:
        self._db.execute(
            "UPDATE households SET head_resident_id = NULL WHERE code = ? AND head_resident_id = ?",
            [code, resident_id],
        )

    def _recompute_household(self, code: str) -> Household:
        household = self.get_household(code)
        members = self._db.fetch_all(
            "SELECT id, last_name, salary, is_migrant, is_active FROM residents WHERE household_code = ?",
            [code],
        )
        aggregates = self.engine.household_aggregates(members, household.head_resident_id)
        current = household.model_dump()
        if any(current[name] != value for name, value in aggregates.items()):
            self._update("households", "code", code, {**aggregates, "updated_at": db_now()})
            log.debug("household_recomputed", code=code, **{k: str(v) for k, v in aggregates.items()})
            return self.get_household(code)
        return household

    def _insert(self, table: str, values: Mapping[str, Any]) -> None:
        columns = list(values)
        placeholders = ", ".join("?" for _ in columns)
        self._db.execute(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            list(values.values()),
        )

    def _update(self, table: str, key: str, key_value: str, values: Mapping[str, Any]) -> None:
        assignments = ", ".join(f"{col} = ?" for col in values)
        self._db.execute(
            f"UPDATE {table} SET {assignments} WHERE {key} = ?",
            [*values.values(), key_value],
        )
