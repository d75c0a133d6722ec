from sqlalchemy.dialects.postgresql import ENUM

from ..extensions import db

# Postgres ENUM types mapped for SQLAlchemy. These assume the types already exist in the DB.
# Set create_type=False to avoid SQLAlchemy trying to create them automatically.

REPORT_TYPES = ("lost", "found")
MATCH_STATUSES = ("suggested", "confirmed", "resolved", "expired", "dismissed")
MATCH_SIDES = ("source", "target")
REJECTION_REASONS = (
    "not_my_item",
    "wrong_condition",
    "already_found",
    "suspicious_behavior",
    "wrong_location",
    "incorrect_details",
    "item_damaged",
    "other",
)

report_type_enum = ENUM(*REPORT_TYPES, name="report_type_enum", create_type=False)
match_status_enum = ENUM(*MATCH_STATUSES, name="match_status_enum", create_type=False)
match_side_enum = ENUM(*MATCH_SIDES, name="match_side_enum", create_type=False)
rejection_reason_enum = ENUM(*REJECTION_REASONS, name="rejection_reason_enum", create_type=False)

# BIGSERIAL on Postgres; SQLite only autoincrements INTEGER PRIMARY KEY.
BigIntId = db.BigInteger().with_variant(db.Integer(), "sqlite")
