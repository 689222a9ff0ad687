from sqlalchemy import Column, Integer, String, Date, Boolean, UniqueConstraint
from leaveflow.database.base import Base


class Holiday(Base):
    __tablename__ = "holidays"
    __table_args__ = (
        UniqueConstraint("date", "location", name="uq_holidays_date_location"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)

    # Calendar key; "global" rows apply to every location
    location = Column(String, default="global", nullable=False, index=True)

    # A row flagged as a business day is kept for reference but never skipped
    is_business_day = Column(Boolean, default=False, nullable=False)

    # Repeat every year on same month/day
    repeat_yearly = Column(Boolean, default=False, nullable=False)
