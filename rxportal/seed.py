"""
Demo data: a small fixed dataset plus optional Faker-generated volume.
"""

import random
from datetime import datetime, timedelta, timezone
from typing import Optional

from faker import Faker
from sqlalchemy import func, insert, select

from rxportal.schema import drugs, patients, physician_patients, physicians, prescriptions

# --------------------------------------------------------------------
# FIXED DEMO DATA
# --------------------------------------------------------------------
DEMO_PATIENTS = ["Alice", "Bob"]
DEMO_PHYSICIANS = ["Dr. Smith", "Dr. Jones"]
DEMO_DRUGS = ["Amoxicillin", "Ibuprofen", "Metformin"]

# (physician, patient)
DEMO_LINKS = [
    ("Dr. Smith", "Alice"),
    ("Dr. Smith", "Bob"),
    ("Dr. Jones", "Bob"),
]

# (patient, physician, drug, quantity, sig, days ago)
DEMO_PRESCRIPTIONS = [
    ("Alice", "Dr. Smith", "Amoxicillin", 20, "1 tab BID", 3),
    ("Alice", "Dr. Smith", "Ibuprofen", 30, "PRN pain", 2),
    ("Bob", "Dr. Jones", "Metformin", 60, "500mg BID", 1),
]

# Generic names used for generated prescriptions.
FAKE_DRUGS = DEMO_DRUGS + [
    "Atorvastatin", "Lisinopril", "Levothyroxine", "Amlodipine",
    "Omeprazole", "Sertraline", "Albuterol", "Gabapentin",
]
SIGS = ["1 tab daily", "1 tab BID", "1 tab TID", "PRN pain", "2 puffs q4h PRN", "500mg BID"]


def _get_or_insert(conn, table, name: str) -> int:
    found = conn.execute(select(table.c.id).where(table.c.name == name)).scalar()
    if found is not None:
        return int(found)
    return int(conn.execute(insert(table).values(name=name)).inserted_primary_key[0])


def _link(conn, physician_id: int, patient_id: int) -> None:
    exists = conn.execute(
        select(physician_patients.c.physician_id).where(
            physician_patients.c.physician_id == physician_id,
            physician_patients.c.patient_id == patient_id,
        )
    ).first()
    if exists is None:
        conn.execute(insert(physician_patients).values(physician_id=physician_id, patient_id=patient_id))


def seed_demo(engine, now: Optional[datetime] = None) -> None:
    """Insert the fixed demo dataset. Safe to run repeatedly."""
    now = now or datetime.now(timezone.utc)
    with engine.begin() as conn:
        patient_ids = {name: _get_or_insert(conn, patients, name) for name in DEMO_PATIENTS}
        physician_ids = {name: _get_or_insert(conn, physicians, name) for name in DEMO_PHYSICIANS}
        drug_ids = {name: _get_or_insert(conn, drugs, name) for name in DEMO_DRUGS}

        for ph, pa in DEMO_LINKS:
            _link(conn, physician_ids[ph], patient_ids[pa])

        if conn.execute(select(func.count()).select_from(prescriptions)).scalar_one() > 0:
            return
        conn.execute(insert(prescriptions), [
            {
                "patient_id": patient_ids[pa],
                "physician_id": physician_ids[ph],
                "drug_id": drug_ids[drug],
                "quantity": qty,
                "sig": sig,
                "prescribed_at": now - timedelta(days=days_ago),
            }
            for pa, ph, drug, qty, sig, days_ago in DEMO_PRESCRIPTIONS
        ])
    print(f"[seed] Demo data ready ({len(DEMO_PRESCRIPTIONS)} prescriptions).")


def seed_fake(engine, num_patients: int = 50, num_physicians: int = 10,
              num_prescriptions: int = 500, days: int = 90, seed: int = 42) -> int:
    """Generate random patients, physicians, links and prescriptions."""
    fake = Faker()
    Faker.seed(seed)
    rng = random.Random(seed)
    now = datetime.now(timezone.utc)

    with engine.begin() as conn:
        patient_ids = [_get_or_insert(conn, patients, fake.unique.name()) for _ in range(num_patients)]
        physician_ids = [
            _get_or_insert(conn, physicians, f"Dr. {fake.unique.last_name()}")
            for _ in range(num_physicians)
        ]
        drug_ids = [_get_or_insert(conn, drugs, name) for name in FAKE_DRUGS]

        # each patient sees one to three physicians
        pairs = []
        for pa in patient_ids:
            for ph in rng.sample(physician_ids, k=min(len(physician_ids), rng.randint(1, 3))):
                _link(conn, ph, pa)
                pairs.append((ph, pa))
        if not pairs:
            return 0

        rows = []
        for _ in range(num_prescriptions):
            ph, pa = rng.choice(pairs)
            rows.append({
                "patient_id": pa,
                "physician_id": ph,
                "drug_id": rng.choice(drug_ids),
                "quantity": rng.choice([10, 14, 20, 28, 30, 60, 90]),
                "sig": rng.choice(SIGS),
                "prescribed_at": now - timedelta(minutes=rng.randint(0, days * 24 * 60)),
            })
        if rows:
            conn.execute(insert(prescriptions), rows)
    print(f"[seed] Generated {len(rows)} prescriptions for {num_patients} patients.")
    return len(rows)
