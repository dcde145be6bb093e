from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class Base(DeclarativeBase):
  pass


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  username: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  password_hash: Mapped[str] = mapped_column(String, nullable=False)
  avatar: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AuthToken(Base):
  __tablename__ = "auth_tokens"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  token_hash: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Board(Base):
  __tablename__ = "boards"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  title: Mapped[str] = mapped_column(String, nullable=False, index=True)
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  background: Mapped[str] = mapped_column(String, nullable=False, default="#0079bf")
  owner_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class BoardMember(Base):
  """One row per (board, user) pair in the board's member set; the owner always has one."""

  __tablename__ = "board_members"
  __table_args__ = (UniqueConstraint("board_id", "user_id", name="ux_board_member_board_user"),)

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id"), nullable=False, index=True)
  user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False, index=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class BoardList(Base):
  __tablename__ = "lists"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Task(Base):
  __tablename__ = "tasks"

  id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id"), nullable=False, index=True)
  list_id: Mapped[str] = mapped_column(String(36), ForeignKey("lists.id"), nullable=False, index=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str] = mapped_column(Text, nullable=False, default="")
  position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  assigned_to: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
  labels: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
  due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  completed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_by: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Activity(Base):
  __tablename__ = "activities"
  __table_args__ = {"sqlite_autoincrement": True}

  # Insertion order; breaks ties between rows written in the same instant.
  seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  id: Mapped[str] = mapped_column(String(36), unique=True, nullable=False, default=new_id)
  board_id: Mapped[str] = mapped_column(String(36), ForeignKey("boards.id"), nullable=False, index=True)
  # user and entity are weak references: they may dangle after deletes.
  user_id: Mapped[str] = mapped_column(String(36), nullable=False)
  action: Mapped[str] = mapped_column(String, nullable=False)
  entity: Mapped[str] = mapped_column(String, nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
  details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
