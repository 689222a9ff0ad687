from sqlalchemy import Column, Integer, String, Boolean, DateTime, Date
from sqlalchemy.sql import func
from leaveflow.database.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)

    employee_id = Column(String, unique=True, index=True, nullable=True)
    name = Column(String, nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    additional_email = Column(String, nullable=True)

    password_hash = Column(String, nullable=False)

    role = Column(String, nullable=False, default="employee")  # admin | hr | employee

    department = Column(String, nullable=True, index=True)
    designation = Column(String, nullable=True)
    is_department_lead = Column(Boolean, default=False, nullable=False)

    # Attributes read by the leave eligibility rules
    gender = Column(String, nullable=True)
    marital_status = Column(String, nullable=True)
    employment_date = Column(Date, nullable=True)
    employment_type = Column(String, nullable=True)  # permanent | contract | intern ...
    has_children = Column(Boolean, default=False, nullable=False)
    pregnancy_status = Column(Boolean, default=False, nullable=False)
    work_location = Column(String, nullable=True)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
