from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Float, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from arena_market.core.database.base import Base, TimestampMixin


class ActorRecord(Base, TimestampMixin):
    """
    Player-controlled character holding currency and inventory.

    - actor_id: host identifier of the actor
    - actor_type: only "character" actors can shop
    - balance: currency held by the actor
    - owner_name: display name of the player with ownership permission
    """

    __tablename__ = "market_actors"

    actor_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    actor_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="character",
    )

    balance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    owner_name: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
    )

    items: Mapped[List["ActorItemRecord"]] = relationship(
        back_populates="actor",
        cascade="all, delete-orphan",
        lazy="noload",
    )


class ActorItemRecord(Base, TimestampMixin):
    """
    An item owned by an actor. ``data`` holds the full structural copy that
    was granted, including its fresh identity.
    """

    __tablename__ = "market_actor_items"

    item_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    actor_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("market_actors.actor_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    source_ref: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)

    data: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    actor: Mapped[ActorRecord] = relationship(back_populates="items")
