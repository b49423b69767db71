"""
Helpers de fecha/hora del negocio.

Los timestamps de registro se guardan en UTC naive. El día calendario de la
numeración diaria y la vigencia de los timbrados usan la hora local del
negocio (BUSINESS_TIMEZONE), también naive.
"""
from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

from app.core.config import settings


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def local_now() -> datetime:
    """Hora local del negocio, sin tzinfo."""
    return datetime.now(ZoneInfo(settings.BUSINESS_TIMEZONE)).replace(tzinfo=None)


def business_date_key(moment: datetime) -> str:
    """Clave YYYY-MM-DD del día calendario del negocio."""
    return moment.strftime("%Y-%m-%d")


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, time(23, 59, 59, 999000))

