from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from arena_market.core.database.base import Base, IdMixin, TimestampMixin


class MarketSetting(Base, IdMixin, TimestampMixin):
    """
    One durable named market record (currency name, open flag, shop
    configuration, activity log, reservations).

    Schema-only model:
    - setting_key: record name, unique per module namespace
    - module_id: namespace the record belongs to
    - setting_value: whole JSON value of the record; always replaced, never patched
    - modified_by: session that last wrote the record
    """

    __tablename__ = "market_settings"

    module_id: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )

    setting_key: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )

    setting_value: Mapped[Any] = mapped_column(
        JSON,
        nullable=True,
    )

    modified_by: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
    )

    __table_args__ = (
        UniqueConstraint("module_id", "setting_key", name="uq_market_settings_module_key"),
    )
