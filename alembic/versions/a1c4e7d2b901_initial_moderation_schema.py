"""initial moderation schema

Revision ID: a1c4e7d2b901
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1c4e7d2b901"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


report_status = sa.Enum("PENDING", "CONFIRMED", "DISMISSED", name="reportstatus")


def upgrade() -> None:
    """Upgrade schema."""
    # Группы и пользователи
    op.create_table(
        "managed_chats",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("chat_id", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("title", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_managed_chats_id", "managed_chats", ["id"])

    op.create_table(
        "chat_admins",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("chat_id", "user_id", name="uq_chat_admin"),
    )

    op.create_table(
        "telegram_users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("full_name", sa.String(), nullable=True),
        sa.Column("is_trusted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("trusted_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_telegram_users_id", "telegram_users", ["id"])

    op.create_table(
        "message_history",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("message_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("user_name", sa.String(), nullable=True),
        sa.Column("text", sa.Text(), nullable=True),
        sa.Column("image_ref", sa.String(), nullable=True),
        sa.Column("file_ref", sa.String(), nullable=True),
        sa.Column("edit_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("edited_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("chat_id", "message_id", name="uq_message_history_chat_message"),
    )
    op.create_index("ix_message_history_user", "message_history", ["user_id"])

    # Детекция
    op.create_table(
        "detection_results",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("message_id", sa.BigInteger(), nullable=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("detected_at", sa.DateTime(), nullable=False),
        sa.Column("net_confidence", sa.Float(), nullable=False, server_default="0"),
        sa.Column("max_confidence", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_spam", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("detection_source", sa.String(16), nullable=False, server_default="auto"),
        sa.Column("detection_method", sa.String(512), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("used_for_training", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("actor_type", sa.String(32), nullable=False, server_default="auto_detection"),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("edit_version", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("content_hash", sa.BigInteger(), nullable=True),
        sa.Column("message_text", sa.Text(), nullable=True),
    )
    op.create_index("ix_detection_results_user", "detection_results", ["user_id"])
    op.create_index("ix_detection_results_chat_message", "detection_results", ["chat_id", "message_id"])
    op.create_index("ix_detection_results_training", "detection_results", ["used_for_training", "is_spam"])

    op.create_table(
        "image_training_samples",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("message_id", sa.BigInteger(), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("image_ref", sa.String(256), nullable=False),
        sa.Column("is_spam", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("labeled_by", sa.String(64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "moderation_reports",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("message_id", sa.BigInteger(), nullable=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("net_confidence", sa.Float(), nullable=False, server_default="0"),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("status", report_status, nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_moderation_reports_status", "moderation_reports", ["status"])

    # Модерация
    op.create_table(
        "user_warnings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("warning_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_reason", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "chat_bans",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("chat_id", sa.BigInteger(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("user_id", "chat_id", name="uq_chat_ban_user_chat"),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("action_type", sa.String(32), nullable=False),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("chat_id", sa.BigInteger(), nullable=True),
        sa.Column("message_id", sa.BigInteger(), nullable=True),
        sa.Column("actor_type", sa.String(32), nullable=False),
        sa.Column("actor_id", sa.String(64), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("chats_affected", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("chats_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_audit_log_user", "audit_log", ["user_id"])

    # Настройки
    op.create_table(
        "moderation_settings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("chat_id", sa.BigInteger(), nullable=False, unique=True),
        sa.Column("auto_ban_threshold", sa.Integer(), nullable=True),
        sa.Column("review_threshold", sa.Integer(), nullable=True),
        sa.Column("training_trusted_detector", sa.String(64), nullable=True),
        sa.Column("training_confidence_floor", sa.Integer(), nullable=True),
        sa.Column("training_net_threshold", sa.Integer(), nullable=True),
        sa.Column("dedup_max_distance", sa.Integer(), nullable=True),
        sa.Column("warning_ban_threshold", sa.Integer(), nullable=True),
        sa.Column("auto_trust_threshold", sa.Integer(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "detector_configs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("chat_id", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("detector_name", sa.String(64), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("weight", sa.Float(), nullable=False, server_default="1"),
        sa.Column("always_run", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("timeout_seconds", sa.Float(), nullable=True),
        sa.UniqueConstraint("chat_id", "detector_name", name="uq_detector_config_chat_name"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("detector_configs")
    op.drop_table("moderation_settings")
    op.drop_index("ix_audit_log_user", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_table("chat_bans")
    op.drop_table("user_warnings")
    op.drop_index("ix_moderation_reports_status", table_name="moderation_reports")
    op.drop_table("moderation_reports")
    report_status.drop(op.get_bind(), checkfirst=True)
    op.drop_table("image_training_samples")
    op.drop_index("ix_detection_results_training", table_name="detection_results")
    op.drop_index("ix_detection_results_chat_message", table_name="detection_results")
    op.drop_index("ix_detection_results_user", table_name="detection_results")
    op.drop_table("detection_results")
    op.drop_index("ix_message_history_user", table_name="message_history")
    op.drop_table("message_history")
    op.drop_index("ix_telegram_users_id", table_name="telegram_users")
    op.drop_table("telegram_users")
    op.drop_table("chat_admins")
    op.drop_index("ix_managed_chats_id", table_name="managed_chats")
    op.drop_table("managed_chats")
