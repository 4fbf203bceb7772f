"""SQLAlchemy database models for Taleweave.

Structured sub-documents (flags, opposing force, character states, ...) are
stored as versioned JSON text produced by ``db.codecs``; nothing outside the
codecs parses these columns.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoryPackageRow(Base):
    """One authored story package (the static graph as a JSON document)."""

    __tablename__ = "story_packages"

    id = Column(String(100), primary_key=True)
    title = Column(String(255), nullable=False, default="")
    genre = Column(String(100), nullable=False, default="")
    art_style = Column(String(100), nullable=False, default="")
    meta_json = Column(Text, nullable=False)
    created_at = Column(DateTime, default=_utcnow)


class PlotStateRow(Base):
    """Durable per-session narrative position and progression counters."""

    __tablename__ = "plot_states"

    session_id = Column(String(100), primary_key=True)
    package_id = Column(String(100), nullable=False)
    current_act_id = Column(String(100), nullable=True)
    current_location_id = Column(String(100), nullable=True)
    current_beat = Column(Integer, nullable=False, default=0)
    off_path_turns = Column(Integer, nullable=False, default=0)
    turn_count = Column(Integer, nullable=False, default=0)
    global_progression = Column(Integer, nullable=False, default=0)
    story_summary = Column(Text, nullable=False, default="")
    awaiting_input = Column(String(32), nullable=True)

    # Versioned JSON blobs (see db.codecs)
    completed_locations_json = Column(Text, nullable=False, default="")
    flags_json = Column(Text, nullable=False, default="")
    last_flag_names_json = Column(Text, nullable=False, default="")
    player_stats_json = Column(Text, nullable=False, default="")
    opposing_force_json = Column(Text, nullable=False, default="")
    character_states_json = Column(Text, nullable=False, default="")
    active_complication_json = Column(Text, nullable=False, default="")
    exhausted_encounters_json = Column(Text, nullable=False, default="")
    injected_encounters_json = Column(Text, nullable=False, default="")
    director_notes_json = Column(Text, nullable=False, default="")

    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class CombatStateRow(Base):
    """Active tactical combat for a session (absent when no combat)."""

    __tablename__ = "combat_states"

    session_id = Column(String(100), primary_key=True)
    combat_json = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)


class SessionHistoryRow(Base):
    """Conversation history handed to the Storyteller on the next turn."""

    __tablename__ = "session_histories"

    session_id = Column(String(100), primary_key=True)
    messages_json = Column(Text, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)
