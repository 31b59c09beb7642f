"""Category tree, membership levels, product reviews and comments

Revision ID: 20261019_feedback
Revises: 20261019_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_feedback"
down_revision = "20261019_initial"
branch_labels = None
depends_on = None

NOW = sa.text("(CURRENT_TIMESTAMP)")


def upgrade():
    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.add_column(
            sa.Column("membership_level", sa.String(16), nullable=False, server_default="basic")
        )

    with op.batch_alter_table("categories", schema=None) as batch_op:
        batch_op.add_column(sa.Column("slug", sa.String(160), nullable=True))
        batch_op.add_column(sa.Column("parent_id", sa.Integer(), nullable=True))
        batch_op.add_column(sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")))
        batch_op.add_column(sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False))
        batch_op.create_index("ix_categories_slug", ["slug"], unique=True)
        batch_op.create_index("ix_categories_parent_id", ["parent_id"], unique=False)
        batch_op.create_foreign_key("fk_categories_parent_id", "categories", ["parent_id"], ["id"])

    op.create_table(
        "product_reviews",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_product_reviews_rating_range"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("product_id", "user_id", name="uq_product_reviews_product_user"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("product_reviews", schema=None) as batch_op:
        batch_op.create_index("ix_product_reviews_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_product_reviews_user_id", ["user_id"], unique=False)

    op.create_table(
        "product_comments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("parent_id", sa.Integer(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=NOW, nullable=False),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["parent_id"], ["product_comments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("product_comments", schema=None) as batch_op:
        batch_op.create_index("ix_product_comments_user_id", ["user_id"], unique=False)
        batch_op.create_index("ix_product_comments_parent_id", ["parent_id"], unique=False)
        batch_op.create_index(
            "ix_product_comments_product_parent", ["product_id", "parent_id"], unique=False
        )


def downgrade():
    op.drop_table("product_comments")
    op.drop_table("product_reviews")

    with op.batch_alter_table("categories", schema=None) as batch_op:
        batch_op.drop_constraint("fk_categories_parent_id", type_="foreignkey")
        batch_op.drop_index("ix_categories_parent_id")
        batch_op.drop_index("ix_categories_slug")
        batch_op.drop_column("updated_at")
        batch_op.drop_column("is_active")
        batch_op.drop_column("parent_id")
        batch_op.drop_column("slug")

    with op.batch_alter_table("users", schema=None) as batch_op:
        batch_op.drop_column("membership_level")
