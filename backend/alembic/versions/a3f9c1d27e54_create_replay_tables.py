"""create replay tables

Revision ID: a3f9c1d27e54
Revises:
Create Date: 2026-10-17 09:12:41.508113

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a3f9c1d27e54"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create replays, lookup tables and per-player tables."""
    op.create_table(
        "game_maps",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_game_maps"),
        sa.UniqueConstraint("name", name="uq_game_maps_name"),
    )
    op.create_table(
        "heroes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=64), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_heroes"),
        sa.UniqueConstraint("name", name="uq_heroes_name"),
    )
    op.create_table(
        "replays",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("fingerprint", sa.String(length=36), nullable=False),
        sa.Column("fingerprint_old", sa.String(length=64), nullable=True),
        sa.Column("filename", sa.String(length=64), nullable=False),
        sa.Column("url", sa.String(length=255), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("game_type", sa.String(length=32), nullable=True),
        sa.Column("game_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("game_length", sa.Integer(), nullable=True),
        sa.Column("game_map_id", sa.Integer(), nullable=True),
        sa.Column("game_version", sa.String(length=32), nullable=True),
        sa.Column("build", sa.Integer(), nullable=False),
        sa.Column("region", sa.Integer(), nullable=True),
        sa.Column("relay_status", sa.String(length=16), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["game_map_id"],
            ["game_maps.id"],
            name="fk_replays_game_map_id_game_maps",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_replays"),
        sa.UniqueConstraint("fingerprint", name="uq_replays_fingerprint"),
    )
    op.create_index(
        "ix_replays_fingerprint_old", "replays", ["fingerprint_old"], unique=False
    )
    op.create_index("ix_replays_game_date", "replays", ["game_date"], unique=False)
    op.create_index(
        "idx_replays_game_type_id", "replays", ["game_type", "id"], unique=False
    )

    op.create_table(
        "players",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("replay_id", sa.Integer(), nullable=False),
        sa.Column("hero_id", sa.Integer(), nullable=True),
        sa.Column("hero_level", sa.Integer(), nullable=True),
        sa.Column("team", sa.Integer(), nullable=False),
        sa.Column("winner", sa.Boolean(), nullable=False),
        sa.Column("blizz_id", sa.Integer(), nullable=True),
        sa.Column("battletag_name", sa.String(length=64), nullable=False),
        sa.Column("battletag_id", sa.Integer(), nullable=False),
        sa.Column("party", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(
            ["hero_id"], ["heroes.id"], name="fk_players_hero_id_heroes"
        ),
        sa.ForeignKeyConstraint(
            ["replay_id"],
            ["replays.id"],
            name="fk_players_replay_id_replays",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_players"),
    )
    op.create_index("ix_players_replay_id", "players", ["replay_id"], unique=False)
    op.create_index(
        "idx_players_battletag",
        "players",
        ["battletag_name", "battletag_id"],
        unique=False,
    )

    op.create_table(
        "player_talents",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.ForeignKeyConstraint(
            ["player_id"],
            ["players.id"],
            name="fk_player_talents_player_id_players",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_player_talents"),
    )
    op.create_index(
        "ix_player_talents_player_id", "player_talents", ["player_id"], unique=False
    )

    score_columns = [
        "level",
        "kills",
        "assists",
        "takedowns",
        "deaths",
        "hero_damage",
        "siege_damage",
        "healing",
        "self_healing",
        "damage_taken",
        "experience_contribution",
        "time_spent_dead",
    ]
    op.create_table(
        "scores",
        sa.Column("player_id", sa.Integer(), nullable=False),
        *[sa.Column(name, sa.Integer(), nullable=True) for name in score_columns],
        sa.ForeignKeyConstraint(
            ["player_id"],
            ["players.id"],
            name="fk_scores_player_id_players",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("player_id", name="pk_scores"),
    )

    op.create_table(
        "bans",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("replay_id", sa.Integer(), nullable=False),
        sa.Column("hero_id", sa.Integer(), nullable=True),
        sa.Column("team", sa.Integer(), nullable=False),
        sa.Column("index", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(
            ["hero_id"], ["heroes.id"], name="fk_bans_hero_id_heroes"
        ),
        sa.ForeignKeyConstraint(
            ["replay_id"],
            ["replays.id"],
            name="fk_bans_replay_id_replays",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_bans"),
    )
    op.create_index("ix_bans_replay_id", "bans", ["replay_id"], unique=False)


def downgrade() -> None:
    """Drop all replay tables."""
    op.drop_index("ix_bans_replay_id", table_name="bans")
    op.drop_table("bans")
    op.drop_table("scores")
    op.drop_index("ix_player_talents_player_id", table_name="player_talents")
    op.drop_table("player_talents")
    op.drop_index("idx_players_battletag", table_name="players")
    op.drop_index("ix_players_replay_id", table_name="players")
    op.drop_table("players")
    op.drop_index("idx_replays_game_type_id", table_name="replays")
    op.drop_index("ix_replays_game_date", table_name="replays")
    op.drop_index("ix_replays_fingerprint_old", table_name="replays")
    op.drop_table("replays")
    op.drop_table("heroes")
    op.drop_table("game_maps")
