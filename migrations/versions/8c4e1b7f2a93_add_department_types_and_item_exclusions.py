"""add department types and item exclusions

Revision ID: 8c4e1b7f2a93
Revises: 3f1a9c2e7d40
Create Date: 2026-10-19 15:40:02.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "8c4e1b7f2a93"
down_revision = "3f1a9c2e7d40"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "department_types",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("observations", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sa.UniqueConstraint("name"),
    )

    with op.batch_alter_table("departments") as batch:
        batch.add_column(sa.Column("type_id", sa.Uuid(), nullable=True))
        batch.create_foreign_key(
            "fk_departments_type", "department_types", ["type_id"], ["id"]
        )
        batch.create_index("idx_departments_type", ["type_id"], unique=False)

    op.create_table(
        "item_exclusions",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("code", sa.String(50), nullable=False),
        sa.Column("name", sa.String(300), nullable=False),
        sa.Column("justification", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
    )


def downgrade() -> None:
    op.drop_table("item_exclusions")
    with op.batch_alter_table("departments") as batch:
        batch.drop_index("idx_departments_type")
        batch.drop_constraint("fk_departments_type", type_="foreignkey")
        batch.drop_column("type_id")
    op.drop_table("department_types")
