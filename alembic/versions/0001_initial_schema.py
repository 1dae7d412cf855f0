"""Initial schema: users, chat_counter, telegram_channel_messages

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("platform", sa.String(16), primary_key=True),
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "chat_counter",
        sa.Column("chat_date", sa.Date, primary_key=True),
        sa.Column("platform", sa.String(16), primary_key=True),
        sa.Column("user_id", sa.String(64), primary_key=True),
        sa.Column("message_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("message_length", sa.Integer, nullable=False, server_default="0"),
        sa.CheckConstraint("message_count >= 0", name="ck_chat_counter_count_nonneg"),
        sa.CheckConstraint("message_length >= 0", name="ck_chat_counter_length_nonneg"),
    )
    op.create_index("ix_chat_counter_platform_date", "chat_counter", ["platform", "chat_date"])
    op.create_index("ix_chat_counter_platform_user", "chat_counter", ["platform", "user_id"])

    op.create_table(
        "telegram_channel_messages",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("message_id", sa.String(64), nullable=False),
        sa.Column("chat_id", sa.String(64), nullable=False),
        sa.Column("chat_type", sa.String(32), nullable=False),
        sa.Column("chat_title", sa.String(255), nullable=True),
        sa.Column("sender_id", sa.String(64), nullable=True),
        sa.Column("sender_name", sa.String(255), nullable=True),
        sa.Column("message_text", sa.Text, nullable=False, server_default=""),
        sa.Column("message_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("media_type", sa.String(32), nullable=True),
        sa.Column("forwarded_from", sa.String(255), nullable=True),
        sa.Column("reply_to_message_id", sa.String(64), nullable=True),
        sa.Column("message_thread_id", sa.String(64), nullable=True),
    )
    op.create_index(
        "ix_tg_messages_chat_date", "telegram_channel_messages", ["chat_id", "message_date"]
    )


def downgrade() -> None:
    op.drop_index("ix_tg_messages_chat_date", table_name="telegram_channel_messages")
    op.drop_table("telegram_channel_messages")
    op.drop_index("ix_chat_counter_platform_user", table_name="chat_counter")
    op.drop_index("ix_chat_counter_platform_date", table_name="chat_counter")
    op.drop_table("chat_counter")
    op.drop_table("users")
