from sqlalchemy import Column, String, Text, DateTime, func
from core.database import Base

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    username = Column(String, unique=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, nullable=False)
    auth_token = Column(String, nullable=True)
    token_expiry = Column(DateTime, nullable=True)
    last_login = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.current_timestamp())
    updated_at = Column(DateTime, server_default=func.current_timestamp())
