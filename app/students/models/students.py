"""Student Model - students enrolled into an admin's shifts"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    Numeric,
    DateTime,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(
        Integer, ForeignKey("admin.id", ondelete="CASCADE"), nullable=False, index=True
    )

    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password = Column(String(255), nullable=False)

    # Код сброса пароля
    otp = Column(String(10), nullable=True)
    otp_expires = Column(DateTime(timezone=True), nullable=True)

    # Флаги
    is_verified = Column(Boolean, default=True, nullable=False)
    has_paid = Column(Boolean, default=False, nullable=False)

    # Место: зеркало seats.reserved_by
    seat_id = Column(
        Integer,
        ForeignKey("seats.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )

    # Месячная плата по выбранным сменам на момент записи
    monthly_fee = Column(Numeric(10, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    admin = relationship("Admin", back_populates="students")
    seat = relationship("Seat", foreign_keys=[seat_id])
    shifts = relationship(
        "StudentShift", back_populates="student", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Student(id={self.id}, admin_id={self.admin_id}, seat_id={self.seat_id}, fee={self.monthly_fee})>"


class StudentShift(Base):
    """Запись студента на смену. Любая такая запись блокирует изменение смен"""

    __tablename__ = "student_shifts"
    __table_args__ = (
        UniqueConstraint("student_id", "shift_id", name="uq_student_shifts_pair"),
    )

    id = Column(Integer, primary_key=True)
    student_id = Column(
        Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # RESTRICT: смена с записанными студентами не удаляется даже мимо проверки
    shift_id = Column(
        Integer, ForeignKey("shifts.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    student = relationship("Student", back_populates="shifts")
    shift = relationship("Shift", back_populates="enrollments")

    def __repr__(self):
        return f"<StudentShift(student_id={self.student_id}, shift_id={self.shift_id})>"
