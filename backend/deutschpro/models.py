from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Text
from .db import Base


class StoredBlob(Base):
	__tablename__ = "stored_blobs"
	# One serialized JSON document per fixed storage key
	key = Column(String(128), primary_key=True)
	payload = Column(Text, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
