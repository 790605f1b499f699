from sqlalchemy import Column, Integer, String
from src.database import Base
from src.shared.models import utc_now_iso


class Employee(Base):
    """Firm employee. Owned by the accounts service; protocols only reference it."""
    __tablename__ = "employees"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, unique=True, index=True, nullable=False)
    permission = Column(String, nullable=False, default="advogado")
    team = Column(String, nullable=True, index=True)
    created_at = Column(String, nullable=False, default=utc_now_iso)


employee_table = Employee.__table__
