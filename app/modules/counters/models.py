from app.database.database import Base
from sqlalchemy import Column, Integer, String


class DailyCounter(Base):
    """Contador de órdenes por día calendario (clave YYYY-MM-DD)"""
    __tablename__ = "daily_counters"

    date = Column(String(10), primary_key=True)
    seq = Column(Integer, nullable=False, default=0)
