"""
Relational schema for patients, physicians, drugs, their links and prescriptions.
"""

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    Table,
    Text,
    func,
)

metadata = MetaData()

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
_Id = BigInteger().with_variant(Integer(), "sqlite")

patients = Table(
    "patients", metadata,
    Column("id", _Id, primary_key=True, autoincrement=True),
    Column("name", Text, nullable=False, unique=True),
)

physicians = Table(
    "physicians", metadata,
    Column("id", _Id, primary_key=True, autoincrement=True),
    Column("name", Text, nullable=False, unique=True),
)

drugs = Table(
    "drugs", metadata,
    Column("id", _Id, primary_key=True, autoincrement=True),
    Column("name", Text, nullable=False, unique=True),
)

physician_patients = Table(
    "physician_patients", metadata,
    Column("physician_id", _Id, ForeignKey("physicians.id", ondelete="CASCADE"), primary_key=True),
    Column("patient_id", _Id, ForeignKey("patients.id", ondelete="CASCADE"), primary_key=True),
)

prescriptions = Table(
    "prescriptions", metadata,
    Column("id", _Id, primary_key=True, autoincrement=True),
    Column("patient_id", _Id, ForeignKey("patients.id", ondelete="RESTRICT"), nullable=False),
    Column("physician_id", _Id, ForeignKey("physicians.id", ondelete="RESTRICT"), nullable=False),
    Column("drug_id", _Id, ForeignKey("drugs.id", ondelete="RESTRICT"), nullable=False),
    Column("quantity", Integer, nullable=False),
    Column("sig", Text, nullable=False),
    # Always assigned by the database, never by the application.
    Column("prescribed_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint("quantity > 0", name="ck_prescriptions_quantity_positive"),
)

Index("idx_prescriptions_date", prescriptions.c.prescribed_at)
Index("idx_prescriptions_patient", prescriptions.c.patient_id)
Index("idx_prescriptions_drug", prescriptions.c.drug_id)
Index("idx_prescriptions_range_patient", prescriptions.c.patient_id, prescriptions.c.prescribed_at)


def create_schema(engine) -> None:
    """Create any missing tables and indexes."""
    metadata.create_all(engine)
