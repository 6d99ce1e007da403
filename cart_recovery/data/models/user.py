from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime

from cart_recovery.data.database import Base


class UserModel(Base):
    __tablename__ = "users"

    # ids come from the auth provider
    id = Column(String, primary_key=True)
    email = Column(String, nullable=False, index=True)
    full_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
