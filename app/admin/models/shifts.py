from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Time,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base


class ShiftConfig(Base):
    """
    Текущая конфигурация смен администратора.

    Набор смен и скидок заменяется целиком; каждая замена поднимает version
    в той же транзакции (optimistic lock), поэтому параллельная замена
    по устаревшей версии падает с StaleDataError.
    """

    __tablename__ = "shift_configs"

    id = Column(Integer, primary_key=True)
    admin_id = Column(
        Integer,
        ForeignKey("admin.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    num_shifts = Column(Integer, nullable=False)
    hours_per_shift = Column(Numeric(4, 2), nullable=False)
    start_time = Column(String(5), nullable=False)  # "HH:MM"
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<ShiftConfig(admin_id={self.admin_id}, num_shifts={self.num_shifts}, version={self.version})>"


class Shift(Base):
    __tablename__ = "shifts"
    __table_args__ = (
        UniqueConstraint("admin_id", "shift_number", name="uq_shifts_admin_number"),
        CheckConstraint("shift_number BETWEEN 1 AND 4", name="ck_shifts_number_range"),
        CheckConstraint("fees >= 0", name="ck_shifts_fees_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    admin_id = Column(
        Integer, ForeignKey("admin.id", ondelete="CASCADE"), nullable=False, index=True
    )
    shift_number = Column(Integer, nullable=False)

    # Время без даты
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    # Базовая месячная стоимость смены
    fees = Column(Numeric(10, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relations
    admin = relationship("Admin", back_populates="shifts")
    enrollments = relationship("StudentShift", back_populates="shift")

    def __repr__(self):
        return f"<Shift(id={self.id}, admin_id={self.admin_id}, number={self.shift_number}, {self.start_time}-{self.end_time}, fees={self.fees})>"


class ShiftDiscount(Base):
    """Скидка при записи на min_shifts смен"""

    __tablename__ = "shift_discounts"
    __table_args__ = (
        UniqueConstraint("admin_id", "min_shifts", name="uq_shift_discounts_admin_min"),
        CheckConstraint("min_shifts >= 1", name="ck_shift_discounts_min_positive"),
        CheckConstraint(
            "discount_percentage >= 0 AND discount_percentage <= 100",
            name="ck_shift_discounts_percentage_range",
        ),
    )

    id = Column(Integer, primary_key=True)
    admin_id = Column(
        Integer, ForeignKey("admin.id", ondelete="CASCADE"), nullable=False, index=True
    )
    min_shifts = Column(Integer, nullable=False)
    discount_percentage = Column(Numeric(5, 2), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<ShiftDiscount(admin_id={self.admin_id}, min_shifts={self.min_shifts}, discount={self.discount_percentage}%)>"
