from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base


class Admin(Base):
    """Владелец читального зала: область видимости смен, мест и студентов"""

    __tablename__ = "admin"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password = Column(String(255), nullable=False)

    name = Column(String(200), nullable=True)
    business_name = Column(String(200), nullable=True)
    mobile_no = Column(String(20), nullable=True)

    # Статусы
    is_verified = Column(Boolean, default=False, nullable=False)
    is_subscribed = Column(Boolean, default=False, nullable=False)
    is_master = Column(Boolean, default=False, nullable=False)

    # Одноразовый код подтверждения email
    otp = Column(String(10), nullable=True)
    otp_expires = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relations
    shifts = relationship("Shift", back_populates="admin", cascade="all, delete-orphan")
    seats = relationship("Seat", back_populates="admin", cascade="all, delete-orphan")
    students = relationship("Student", back_populates="admin", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Admin(id={self.id}, email='{self.email}', verified={self.is_verified}, subscribed={self.is_subscribed})>"
