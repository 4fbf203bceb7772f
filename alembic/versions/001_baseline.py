"""baseline: story packages, plot states, combat states, session histories

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "story_packages",
        sa.Column("id", sa.String(100), primary_key=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("genre", sa.String(100), nullable=False),
        sa.Column("art_style", sa.String(100), nullable=False),
        sa.Column("meta_json", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "plot_states",
        sa.Column("session_id", sa.String(100), primary_key=True),
        sa.Column("package_id", sa.String(100), nullable=False),
        sa.Column("current_act_id", sa.String(100), nullable=True),
        sa.Column("current_location_id", sa.String(100), nullable=True),
        sa.Column("current_beat", sa.Integer(), nullable=False),
        sa.Column("off_path_turns", sa.Integer(), nullable=False),
        sa.Column("turn_count", sa.Integer(), nullable=False),
        sa.Column("global_progression", sa.Integer(), nullable=False),
        sa.Column("story_summary", sa.Text(), nullable=False),
        sa.Column("awaiting_input", sa.String(32), nullable=True),
        sa.Column("completed_locations_json", sa.Text(), nullable=False),
        sa.Column("flags_json", sa.Text(), nullable=False),
        sa.Column("last_flag_names_json", sa.Text(), nullable=False),
        sa.Column("player_stats_json", sa.Text(), nullable=False),
        sa.Column("opposing_force_json", sa.Text(), nullable=False),
        sa.Column("character_states_json", sa.Text(), nullable=False),
        sa.Column("active_complication_json", sa.Text(), nullable=False),
        sa.Column("exhausted_encounters_json", sa.Text(), nullable=False),
        sa.Column("injected_encounters_json", sa.Text(), nullable=False),
        sa.Column("director_notes_json", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_plot_states_package_id", "plot_states", ["package_id"])

    op.create_table(
        "combat_states",
        sa.Column("session_id", sa.String(100), primary_key=True),
        sa.Column("combat_json", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )

    op.create_table(
        "session_histories",
        sa.Column("session_id", sa.String(100), primary_key=True),
        sa.Column("messages_json", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("session_histories")
    op.drop_table("combat_states")
    op.drop_index("ix_plot_states_package_id", table_name="plot_states")
    op.drop_table("plot_states")
    op.drop_table("story_packages")
