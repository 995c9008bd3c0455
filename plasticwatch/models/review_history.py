"""Append-only audit trail of admin actions on contributions.

Rows are never updated or deleted. The ORM refuses to flush such changes and
the table carries database triggers that abort UPDATE and DELETE statements
issued outside the ORM.
"""
from sqlalchemy import DDL, JSON, CheckConstraint, Column, ForeignKey, Index, String, event

from plasticwatch.database import Base
from plasticwatch.utils.exceptions import ImmutableRecordError
from plasticwatch.utils.timestamps import utc_now_iso

REVIEW_ACTIONS = ("classified", "rejected", "updated", "deleted", "reclassified")


class ReviewHistory(Base):
    __tablename__ = "review_history"
    __table_args__ = (
        CheckConstraint(
            "action IN ('classified', 'rejected', 'updated', 'deleted', 'reclassified')",
            name="ck_review_history_action",
        ),
        Index("idx_review_history_contribution", "contribution_id"),
        Index("idx_review_history_admin", "admin_id"),
        Index("idx_review_history_date", "created_at"),
        Index("idx_review_history_action", "action"),
    )

    id = Column(String, primary_key=True)
    contribution_id = Column(String, ForeignKey("contributions.id"), nullable=False)
    admin_id = Column(String, nullable=False)
    action = Column(String, nullable=False)
    previous_status = Column(String, nullable=True)
    new_status = Column(String, nullable=True)
    changes = Column(JSON, nullable=True)
    reason = Column(String, nullable=True)
    created_at = Column(String, nullable=False, default=utc_now_iso)


@event.listens_for(ReviewHistory, "before_update")
def _refuse_update(mapper, connection, target):
    raise ImmutableRecordError()


@event.listens_for(ReviewHistory, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise ImmutableRecordError()


_table = ReviewHistory.__table__

for _op in ("UPDATE", "DELETE"):
    event.listen(
        _table,
        "after_create",
        DDL(
            f"CREATE TRIGGER review_history_no_{_op.lower()} BEFORE {_op} ON review_history "
            "BEGIN SELECT RAISE(ABORT, 'review_history is append-only'); END"
        ).execute_if(dialect="sqlite"),
    )

event.listen(
    _table,
    "after_create",
    DDL(
        "CREATE OR REPLACE FUNCTION review_history_append_only() RETURNS trigger AS $$ "
        "BEGIN RAISE EXCEPTION 'review_history is append-only'; END; "
        "$$ LANGUAGE plpgsql"
    ).execute_if(dialect="postgresql"),
)
event.listen(
    _table,
    "after_create",
    DDL(
        "CREATE TRIGGER review_history_append_only BEFORE UPDATE OR DELETE ON review_history "
        "FOR EACH ROW EXECUTE FUNCTION review_history_append_only()"
    ).execute_if(dialect="postgresql"),
)
