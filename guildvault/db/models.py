# guildvault/db/models.py
from __future__ import annotations
import enum
from datetime import datetime
from sqlalchemy import (
    BigInteger, Boolean, CheckConstraint, DateTime, Enum as SAEnum, Float, ForeignKey, Integer, String, Text,
    text, UniqueConstraint
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from guildvault.utils.dt import now_tz

class Base(DeclarativeBase): pass

# ---- Роли в группе ----
class RoleEnum(str, enum.Enum):
    dm = "dm"
    player = "player"

# ---- Аудит ----
class AuditLog(Base):
    __tablename__ = "audit_log"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    actor_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    actor_role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    action: Mapped[str] = mapped_column(String(64))
    entity: Mapped[str] = mapped_column(String(64))
    before: Mapped[str | None] = mapped_column(Text, nullable=True)
    after: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_tz, nullable=False)

# ---- Пользователи (синхронизация с Telegram) ----
class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tg_id: Mapped[int | None] = mapped_column(BigInteger, unique=True, index=True, nullable=True)
    username: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_tz, nullable=False)

# ---- Группы и участники ----
class Group(Base):
    __tablename__ = "groups"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(128))
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_tz, nullable=False)
    members: Mapped[list["GroupMember"]] = relationship(back_populates="group", cascade="all, delete-orphan")

class GroupMember(Base):
    __tablename__ = "group_members"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    role: Mapped[RoleEnum] = mapped_column(SAEnum(RoleEnum), default=RoleEnum.player, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, server_default=text("1"), nullable=False)
    nickname: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_tz, nullable=False)
    group: Mapped["Group"] = relationship(back_populates="members")

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_group_member"),
    )

# ---- Инвентарь (аккаунт участника в группе) ----
class Account(Base):
    __tablename__ = "accounts"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    group_id: Mapped[int] = mapped_column(ForeignKey("groups.id"), index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_tz, nullable=False)

    __table_args__ = (
        UniqueConstraint("group_id", "user_id", name="uq_account_group_user"),
    )

class AccountItem(Base):
    __tablename__ = "account_items"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id", ondelete="CASCADE"), index=True)
    item_ref: Mapped[str] = mapped_column(String(64), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, server_default=text("0"), nullable=False)

    __table_args__ = (
        UniqueConstraint("account_id", "item_ref", name="uq_account_item"),
        CheckConstraint("quantity >= 0", name="ck_account_item_qty"),
    )

class AccountCurrency(Base):
    __tablename__ = "account_currency"
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id", ondelete="CASCADE"), primary_key=True)
    copper: Mapped[int] = mapped_column(Integer, server_default=text("0"), nullable=False)
    silver: Mapped[int] = mapped_column(Integer, server_default=text("0"), nullable=False)
    gold: Mapped[int] = mapped_column(Integer, server_default=text("0"), nullable=False)
    platinum: Mapped[int] = mapped_column(Integer, server_default=text("0"), nullable=False)

    __table_args__ = (
        CheckConstraint("copper >= 0 AND silver >= 0 AND gold >= 0 AND platinum >= 0", name="ck_currency_nonneg"),
    )

# ---- Каталог предметов ----
class Item(Base):
    __tablename__ = "items"
    ref: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128))
    description: Mapped[str] = mapped_column(Text, server_default=text("''"), nullable=False)
    category: Mapped[str] = mapped_column(String(64), server_default=text("'misc'"), nullable=False)
    weight: Mapped[float] = mapped_column(Float, server_default=text("0"), nullable=False)
    group_id: Mapped[int | None] = mapped_column(ForeignKey("groups.id"), nullable=True)  # кастомный предмет группы
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=now_tz, nullable=False)
