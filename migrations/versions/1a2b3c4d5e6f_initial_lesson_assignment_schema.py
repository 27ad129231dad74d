"""initial_lesson_assignment_schema

Creates availability, lesson, video lesson and goal progress tables from
lessonmatch/db/schema.sql.

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union
from pathlib import Path

from alembic import op
import sqlalchemy as sa


revision: str = "1a2b3c4d5e6f"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _adapt_sql(sql: str, dialect_name: str) -> str:
    """Adapt DDL for the target database dialect."""
    if dialect_name == "postgresql":
        # AUTOINCREMENT → SERIAL for PostgreSQL
        sql = sql.replace("INTEGER PRIMARY KEY AUTOINCREMENT", "SERIAL PRIMARY KEY")
    return sql


def upgrade() -> None:
    """Create the full schema.

    schema.sql uses CREATE ... IF NOT EXISTS throughout, so it is safe to
    run against an existing database.
    """
    dialect_name = op.get_bind().dialect.name

    schema_path = Path(__file__).resolve().parents[2] / "lessonmatch" / "db" / "schema.sql"
    schema_sql = schema_path.read_text()
    # Execute each statement individually (op.execute doesn't support executescript)
    for statement in schema_sql.split(";"):
        # Strip comment lines before checking if there's real SQL
        lines = [
            line for line in statement.splitlines()
            if line.strip() and not line.strip().startswith("--")
        ]
        cleaned = "\n".join(lines).strip()
        if cleaned:
            op.execute(sa.text(_adapt_sql(cleaned, dialect_name)))


def downgrade() -> None:
    """Drop all tables in reverse dependency order."""
    tables = [
        "conversation_analysis",
        "lesson_reviews",
        "homework_assignments",
        "student_goal_progress",
        "group_goals",
        "video_lessons",
        "lessons",
        "groups",
        "student_availability",
        "teacher_availability",
        "users",
    ]
    for table in tables:
        op.drop_table(table)
