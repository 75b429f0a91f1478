"""
Persistence for prescriptions, drugs, physician–patient links and analytics.

`Repository` is the contract handlers depend on. `SqlRepository` runs it
against a relational store through SQLAlchemy; `NoopRepository` stands in when
no store is configured; `InMemoryRepository` keeps everything in process and
is what the test-suite and demos run on.
"""

import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Set, Tuple

from sqlalchemy import DateTime, func, insert, literal, select, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from rxportal.config import DEFAULT_PRESCRIPTION_LIMIT, MAX_PRESCRIPTION_LIMIT
from rxportal.database import ping as ping_engine
from rxportal.errors import InvalidReference, NotConfigured
from rxportal.models import (
    Patient,
    Physician,
    Prescription,
    PrescriptionFilter,
    TopDrug,
)
from rxportal.schema import drugs, patients, physician_patients, physicians, prescriptions


def clamp_limit(limit: int) -> int:
    """Listing limits outside 1..200 fall back to the default of 50."""
    if limit <= 0 or limit > MAX_PRESCRIPTION_LIMIT:
        return DEFAULT_PRESCRIPTION_LIMIT
    return limit


def normalize_drug_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise ValueError("drug name cannot be blank")
    return name


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive values are taken as UTC; aware ones are converted to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Repository(ABC):

    @abstractmethod
    def create_prescription(self, p: Prescription) -> Prescription:
        """Insert *p*; the store assigns id and prescribed_at."""

    @abstractmethod
    def find_or_create_drug(self, name: str) -> int:
        """Return the id of the drug called *name*, creating it if needed."""

    @abstractmethod
    def is_physician_patient_linked(self, physician_id: int, patient_id: int) -> bool:
        ...

    @abstractmethod
    def list_prescriptions(self, flt: PrescriptionFilter) -> List[Prescription]:
        """Newest first (prescribed_at desc, id desc), with display names."""

    @abstractmethod
    def list_patients_for_physician(self, physician_id: int) -> List[Patient]:
        ...

    @abstractmethod
    def list_physicians_for_patient(self, patient_id: int) -> List[Physician]:
        ...

    @abstractmethod
    def top_drugs(self, from_: datetime, to: datetime, limit: int,
                  patient_id: Optional[int] = None) -> List[TopDrug]:
        """Total quantity per drug over prescribed_at in [from_, to)."""

    def ping(self) -> Optional[bool]:
        """True/False when a store backs this repository, None otherwise."""
        return None


# ── SQL implementation ───────────────────────────────────────────────

_SQLITE_TIMESTAMP = "%Y-%m-%d %H:%M:%f"


def _is_foreign_key_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code is not None:
        return code == "23503"
    return "foreign key" in str(orig).lower()


class SqlRepository(Repository):
    """Repository backed by PostgreSQL (or SQLite for local runs and tests)."""

    def __init__(self, engine):
        self.engine = engine

    def _timestamp(self, value):
        """
        Comparable form of a timestamp column or bound value. SQLite stores
        timestamps as text in whichever precision wrote them (CURRENT_TIMESTAMP
        has none, SQLAlchemy writes microseconds), so both sides are rendered
        through one strftime format there.
        """
        if isinstance(value, datetime):
            value = literal(_as_utc(value), DateTime(timezone=True))
        if self.engine.dialect.name == "sqlite":
            return func.strftime(_SQLITE_TIMESTAMP, value)
        return value

    def create_prescription(self, p: Prescription) -> Prescription:
        stmt = (
            insert(prescriptions)
            .values(
                patient_id=p.patient_id,
                physician_id=p.physician_id,
                drug_id=p.drug_id,
                quantity=p.quantity,
                sig=p.sig,
            )
            .returning(prescriptions.c.id, prescriptions.c.prescribed_at)
        )
        try:
            with self.engine.begin() as conn:
                row = conn.execute(stmt).one()
        except IntegrityError as e:
            if _is_foreign_key_violation(e):
                raise InvalidReference(str(e.orig)) from e
            raise
        return replace(p, id=row.id, prescribed_at=_as_utc(row.prescribed_at))

    def find_or_create_drug(self, name: str) -> int:
        name = normalize_drug_name(name)
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            stmt = postgresql.insert(drugs).values(name=name)
        elif dialect == "sqlite":
            stmt = sqlite.insert(drugs).values(name=name)
        else:
            return self._find_or_create_drug_with_retry(name)

        # The no-op update makes RETURNING yield the existing row on conflict.
        stmt = stmt.on_conflict_do_update(
            index_elements=[drugs.c.name],
            set_={"name": stmt.excluded.name},
        ).returning(drugs.c.id)
        with self.engine.begin() as conn:
            return int(conn.execute(stmt).scalar_one())

    def _find_or_create_drug_with_retry(self, name: str) -> int:
        lookup = select(drugs.c.id).where(drugs.c.name == name)
        with self.engine.begin() as conn:
            found = conn.execute(lookup).scalar()
        if found is not None:
            return int(found)
        try:
            with self.engine.begin() as conn:
                return int(conn.execute(insert(drugs).values(name=name)).inserted_primary_key[0])
        except IntegrityError:
            # Lost the race to a concurrent insert of the same name.
            with self.engine.begin() as conn:
                return int(conn.execute(lookup).scalar_one())

    def is_physician_patient_linked(self, physician_id: int, patient_id: int) -> bool:
        sql = text("""
            SELECT 1 FROM physician_patients
            WHERE physician_id = :ph AND patient_id = :pa
            LIMIT 1
        """)
        with self.engine.connect() as conn:
            row = conn.execute(sql, {"ph": physician_id, "pa": patient_id}).first()
        return row is not None

    def list_prescriptions(self, flt: PrescriptionFilter) -> List[Prescription]:
        stmt = (
            select(
                prescriptions.c.id,
                prescriptions.c.patient_id, patients.c.name.label("patient_name"),
                prescriptions.c.physician_id, physicians.c.name.label("physician_name"),
                prescriptions.c.drug_id, drugs.c.name.label("drug_name"),
                prescriptions.c.quantity, prescriptions.c.sig, prescriptions.c.prescribed_at,
            )
            .select_from(
                prescriptions
                .join(patients, patients.c.id == prescriptions.c.patient_id)
                .join(physicians, physicians.c.id == prescriptions.c.physician_id)
                .join(drugs, drugs.c.id == prescriptions.c.drug_id)
            )
        )
        if flt.patient_id is not None:
            stmt = stmt.where(prescriptions.c.patient_id == flt.patient_id)
        if flt.physician_id is not None:
            stmt = stmt.where(prescriptions.c.physician_id == flt.physician_id)
        stmt = stmt.order_by(
            self._timestamp(prescriptions.c.prescribed_at).desc(), prescriptions.c.id.desc()
        ).limit(clamp_limit(flt.limit))

        with self.engine.connect() as conn:
            rows = conn.execute(stmt).mappings().all()
        return [
            Prescription(
                id=r["id"],
                patient_id=r["patient_id"], patient_name=r["patient_name"],
                physician_id=r["physician_id"], physician_name=r["physician_name"],
                drug_id=r["drug_id"], drug_name=r["drug_name"],
                quantity=r["quantity"], sig=r["sig"],
                prescribed_at=_as_utc(r["prescribed_at"]),
            )
            for r in rows
        ]

    def list_patients_for_physician(self, physician_id: int) -> List[Patient]:
        stmt = (
            select(patients.c.id, patients.c.name)
            .select_from(physician_patients.join(patients, patients.c.id == physician_patients.c.patient_id))
            .where(physician_patients.c.physician_id == physician_id)
            .order_by(patients.c.name.asc(), patients.c.id.asc())
        )
        with self.engine.connect() as conn:
            return [Patient(id=r.id, name=r.name) for r in conn.execute(stmt)]

    def list_physicians_for_patient(self, patient_id: int) -> List[Physician]:
        stmt = (
            select(physicians.c.id, physicians.c.name)
            .select_from(physician_patients.join(physicians, physicians.c.id == physician_patients.c.physician_id))
            .where(physician_patients.c.patient_id == patient_id)
            .order_by(physicians.c.name.asc(), physicians.c.id.asc())
        )
        with self.engine.connect() as conn:
            return [Physician(id=r.id, name=r.name) for r in conn.execute(stmt)]

    def top_drugs(self, from_: datetime, to: datetime, limit: int,
                  patient_id: Optional[int] = None) -> List[TopDrug]:
        total_qty = func.coalesce(func.sum(prescriptions.c.quantity), 0).label("total_qty")
        stmt = (
            select(drugs.c.id, drugs.c.name, total_qty)
            .select_from(prescriptions.join(drugs, drugs.c.id == prescriptions.c.drug_id))
            .where(
                self._timestamp(prescriptions.c.prescribed_at) >= self._timestamp(from_),
                self._timestamp(prescriptions.c.prescribed_at) < self._timestamp(to),
            )
        )
        if patient_id is not None:
            stmt = stmt.where(prescriptions.c.patient_id == patient_id)
        stmt = (
            stmt.group_by(drugs.c.id, drugs.c.name)
            .order_by(total_qty.desc(), drugs.c.id.asc())
            .limit(limit)
        )
        with self.engine.connect() as conn:
            return [
                TopDrug(drug_id=r.id, drug_name=r.name, total_quantity=int(r.total_qty))
                for r in conn.execute(stmt)
            ]

    def ping(self) -> Optional[bool]:
        return ping_engine(self.engine)


# ── Placeholder when no store is configured ──────────────────────────

class NoopRepository(Repository):
    """Writes fail, reads come back empty."""

    def create_prescription(self, p: Prescription) -> Prescription:
        raise NotConfigured("db not configured")

    def find_or_create_drug(self, name: str) -> int:
        raise NotConfigured("db not configured")

    def is_physician_patient_linked(self, physician_id: int, patient_id: int) -> bool:
        return False

    def list_prescriptions(self, flt: PrescriptionFilter) -> List[Prescription]:
        return []

    def list_patients_for_physician(self, physician_id: int) -> List[Patient]:
        return []

    def list_physicians_for_patient(self, patient_id: int) -> List[Physician]:
        return []

    def top_drugs(self, from_, to, limit, patient_id=None) -> List[TopDrug]:
        return []


# ── In-process implementation ────────────────────────────────────────

class InMemoryRepository(Repository):
    """
    Dict-backed repository with the same contracts as the SQL one. A single
    lock stands in for the store's transactional guarantees, so concurrent
    find_or_create_drug calls for one name still converge on one id.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self._lock = threading.Lock()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.patients: Dict[int, str] = {}
        self.physicians: Dict[int, str] = {}
        self.drugs: Dict[int, str] = {}
        self.links: Set[Tuple[int, int]] = set()
        self.prescriptions: Dict[int, Prescription] = {}

    @staticmethod
    def _next_id(table: Dict[int, object]) -> int:
        return max(table, default=0) + 1

    def _add_named(self, table: Dict[int, str], name: str) -> int:
        with self._lock:
            if name in table.values():
                raise ValueError(f"duplicate name: {name!r}")
            new_id = self._next_id(table)
            table[new_id] = name
            return new_id

    def add_patient(self, name: str) -> int:
        return self._add_named(self.patients, name)

    def add_physician(self, name: str) -> int:
        return self._add_named(self.physicians, name)

    def link(self, physician_id: int, patient_id: int) -> None:
        with self._lock:
            if physician_id not in self.physicians or patient_id not in self.patients:
                raise InvalidReference("unknown physician or patient")
            self.links.add((physician_id, patient_id))

    def create_prescription(self, p: Prescription) -> Prescription:
        with self._lock:
            if (p.patient_id not in self.patients
                    or p.physician_id not in self.physicians
                    or p.drug_id not in self.drugs):
                raise InvalidReference("invalid patient_id, physician_id, or drug_id")
            created = replace(p, id=self._next_id(self.prescriptions), prescribed_at=self._clock())
            self.prescriptions[created.id] = created
            return created

    def find_or_create_drug(self, name: str) -> int:
        name = normalize_drug_name(name)
        with self._lock:
            for drug_id, existing in self.drugs.items():
                if existing == name:
                    return drug_id
            drug_id = self._next_id(self.drugs)
            self.drugs[drug_id] = name
            return drug_id

    def is_physician_patient_linked(self, physician_id: int, patient_id: int) -> bool:
        return (physician_id, patient_id) in self.links

    def list_prescriptions(self, flt: PrescriptionFilter) -> List[Prescription]:
        with self._lock:
            rows = [
                p for p in self.prescriptions.values()
                if (flt.patient_id is None or p.patient_id == flt.patient_id)
                and (flt.physician_id is None or p.physician_id == flt.physician_id)
            ]
            rows.sort(key=lambda p: (p.prescribed_at, p.id), reverse=True)
            return [
                replace(
                    p,
                    patient_name=self.patients[p.patient_id],
                    physician_name=self.physicians[p.physician_id],
                    drug_name=self.drugs[p.drug_id],
                )
                for p in rows[:clamp_limit(flt.limit)]
            ]

    def list_patients_for_physician(self, physician_id: int) -> List[Patient]:
        with self._lock:
            items = [Patient(id=pa, name=self.patients[pa]) for ph, pa in self.links if ph == physician_id]
        return sorted(items, key=lambda it: (it.name, it.id))

    def list_physicians_for_patient(self, patient_id: int) -> List[Physician]:
        with self._lock:
            items = [Physician(id=ph, name=self.physicians[ph]) for ph, pa in self.links if pa == patient_id]
        return sorted(items, key=lambda it: (it.name, it.id))

    def top_drugs(self, from_: datetime, to: datetime, limit: int,
                  patient_id: Optional[int] = None) -> List[TopDrug]:
        totals: Dict[int, int] = {}
        with self._lock:
            for p in self.prescriptions.values():
                if not (from_ <= p.prescribed_at < to):
                    continue
                if patient_id is not None and p.patient_id != patient_id:
                    continue
                totals[p.drug_id] = totals.get(p.drug_id, 0) + p.quantity
            items = [TopDrug(drug_id=d, drug_name=self.drugs[d], total_quantity=q) for d, q in totals.items()]
        items.sort(key=lambda t: (-t.total_quantity, t.drug_id))
        return items[:limit]
