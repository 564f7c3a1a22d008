from sqlalchemy import Column, Integer, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base


class Seat(Base):
    __tablename__ = "seats"
    __table_args__ = (
        UniqueConstraint("admin_id", "seat_number", name="uq_seats_admin_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(
        Integer, ForeignKey("admin.id", ondelete="CASCADE"), nullable=False, index=True
    )
    seat_number = Column(Integer, nullable=False)

    # Занявший студент (из students app). unique: один студент - одно место
    reserved_by = Column(Integer, nullable=True, unique=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relations
    admin = relationship("Admin", back_populates="seats")

    @property
    def is_reserved(self) -> bool:
        return self.reserved_by is not None

    def __repr__(self):
        return f"<Seat(id={self.id}, admin_id={self.admin_id}, number={self.seat_number}, reserved_by={self.reserved_by})>"
