from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text
from .db import Base


class AuthUser(Base):
	__tablename__ = "auth_users"
	# Primary key is username
	username = Column(String(128), primary_key=True, index=True)
	password_hash = Column(String(256), nullable=False)
	email = Column(String(256), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# One row per issued token (jti); deleting the row revokes the token
	session_id = Column(String(64), primary_key=True)
	username = Column(String(128), nullable=False, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class SpeakingRecord(Base):
	__tablename__ = "speaking_records"
	id = Column(String(64), primary_key=True)
	owner = Column(String(128), nullable=False, index=True)
	part = Column(String(16), nullable=False)
	topic = Column(Text, nullable=False)
	band = Column(String(8), nullable=False)
	ai_script = Column(Text, nullable=False)
	personal_script = Column(Text, nullable=False)
	highlights_json = Column(Text, nullable=False, default="[]")  # JSON list of {phrase, cn_meaning, reusability}
	created_at = Column(DateTime, nullable=False)
	updated_at = Column(DateTime, nullable=False, index=True)
