from __future__ import annotations
from datetime import datetime, timezone
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool


DEFAULT_DATABASE_URL = "sqlite:///./speech_coach.db"

Base = declarative_base()


def utcnow() -> datetime:
	# Naive UTC, matching how DateTime columns are stored
	return datetime.now(timezone.utc).replace(tzinfo=None)


def build_engine(database_url: str | None) -> Engine:
	url = database_url or DEFAULT_DATABASE_URL
	if not url.startswith("sqlite"):
		return create_engine(url, future=True, pool_pre_ping=True)
	connect_args = {"check_same_thread": False}
	if url in ("sqlite://", "sqlite:///:memory:"):
		# A single shared connection keeps an in-memory database alive across sessions
		return create_engine(url, connect_args=connect_args, poolclass=StaticPool, future=True)
	return create_engine(url, connect_args=connect_args, future=True)


def build_session_factory(engine: Engine) -> sessionmaker:
	return sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)


def get_db(request: Request) -> Iterator[Session]:
	db = request.app.state.session_factory()
	try:
		yield db
	finally:
		db.close()
