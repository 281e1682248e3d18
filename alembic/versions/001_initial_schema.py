"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates the mirror tables:
- conversations (unique session_id)
- conversation_messages (unique fingerprint, cascading FK to conversations)
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Conversations table
    op.create_table(
        "conversations",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("session_id", sa.String(255), nullable=False),
        sa.Column("website_id", sa.String(255), nullable=False),
        sa.Column("active_last", sa.BigInteger, nullable=True),
        sa.Column("active_now", sa.Boolean, nullable=False, default=False),
        sa.Column("availability", sa.String(50), nullable=True),
        sa.Column("is_blocked", sa.Boolean, nullable=False, default=False),
        sa.Column("state", sa.String(50), nullable=True),
        sa.Column("status", sa.Integer, nullable=False, default=0),
        sa.Column("unread_operator", sa.Integer, nullable=False, default=0),
        sa.Column("unread_visitor", sa.Integer, nullable=False, default=0),
        sa.Column("waiting_since", sa.BigInteger, nullable=True),
        sa.Column("assigned_user_id", sa.String(255), nullable=True),
        sa.Column("people_id", sa.String(255), nullable=True),
        sa.Column("meta_nickname", sa.String(255), nullable=True),
        sa.Column("meta_email", sa.String(255), nullable=True),
        sa.Column("meta_phone", sa.String(50), nullable=True),
        sa.Column("meta_avatar", sa.Text, nullable=True),
        sa.Column("meta_ip", sa.String(100), nullable=True),
        sa.Column("meta_origin", sa.String(100), nullable=True),
        sa.Column("meta_segments", sa.JSON, nullable=True),
        sa.Column("meta_data", sa.JSON, nullable=True),
        sa.Column("meta_device", sa.JSON, nullable=True),
        sa.Column("meta_connection", sa.JSON, nullable=True),
        sa.Column("mentions", sa.JSON, nullable=True),
        sa.Column("participants", sa.JSON, nullable=True),
        sa.Column("verifications", sa.JSON, nullable=True),
        sa.Column("compose", sa.JSON, nullable=True),
        sa.Column("last_message", sa.Text, nullable=True),
        sa.Column("preview_message_type", sa.String(50), nullable=True),
        sa.Column("preview_message_from", sa.String(50), nullable=True),
        sa.Column("preview_message_excerpt", sa.Text, nullable=True),
        sa.Column("preview_message_fingerprint", sa.BigInteger, nullable=True),
        sa.Column("created_at_crisp", sa.BigInteger, nullable=False),
        sa.Column("updated_at_crisp", sa.BigInteger, nullable=False),
        sa.Column("is_provisional", sa.Boolean, nullable=False, default=False),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_session_id", "conversations", ["session_id"], unique=True)
    op.create_index(
        "idx_conv_website_updated", "conversations", ["website_id", "updated_at_crisp"]
    )

    # Messages table
    op.create_table(
        "conversation_messages",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("fingerprint", sa.BigInteger, nullable=False),
        sa.Column(
            "session_id",
            sa.String(255),
            sa.ForeignKey("conversations.session_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("website_id", sa.String(255), nullable=False),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("from", sa.String(50), nullable=False),
        sa.Column("origin", sa.String(50), nullable=True),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("user_id", sa.String(255), nullable=True),
        sa.Column("user_nickname", sa.String(255), nullable=True),
        sa.Column("preview", sa.JSON, nullable=True),
        sa.Column("mentions", sa.JSON, nullable=True),
        sa.Column("read", sa.String(50), nullable=True),
        sa.Column("delivered", sa.String(50), nullable=True),
        sa.Column("stamped", sa.Boolean, nullable=False, default=False),
        sa.Column("timestamp", sa.BigInteger, nullable=False),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index(
        "idx_fingerprint", "conversation_messages", ["fingerprint"], unique=True
    )
    op.create_index(
        "idx_msg_session_time", "conversation_messages", ["session_id", "timestamp"]
    )


def downgrade() -> None:
    op.drop_table("conversation_messages")
    op.drop_table("conversations")
