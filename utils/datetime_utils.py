from dataclasses import dataclass
from datetime import datetime, date, time, timedelta, tzinfo
from typing import Tuple, Union

import pytz

DEFAULT_TZ = pytz.utc


def get_timezone(name: str):
    """Таймзона pytz по имени (UnknownTimeZoneError для неизвестных)"""
    return pytz.timezone(name)


@dataclass(frozen=True)
class EvaluationClock:
    """
    Явные "часы" для расчётов: текущий момент + локальная таймзона пользователя.

    Передаётся во все функции, которым нужно "сегодня", вместо datetime.now().
    """
    now: datetime
    tz: tzinfo = DEFAULT_TZ

    def __post_init__(self):
        if self.now.tzinfo is None:
            # naive время считаем локальным временем пользователя
            object.__setattr__(self, "now", self.tz.localize(self.now))
        else:
            object.__setattr__(self, "now", self.now.astimezone(self.tz))

    @classmethod
    def now_in(cls, tz_name: str = "UTC") -> "EvaluationClock":
        tz = get_timezone(tz_name)
        return cls(now=datetime.now(tz), tz=tz)

    @classmethod
    def at(cls, value: Union[date, datetime], tz_name: str = "UTC") -> "EvaluationClock":
        """Часы на конкретный момент (date -> полдень этого дня)"""
        tz = get_timezone(tz_name)
        if not isinstance(value, datetime):
            value = datetime.combine(value, time(12, 0))
        return cls(now=value, tz=tz)

    @property
    def today(self) -> date:
        return self.now.date()

    @property
    def yesterday(self) -> date:
        return self.today - timedelta(days=1)

    def local_date(self, moment: datetime) -> date:
        """Календарная дата момента в таймзоне часов"""
        if moment.tzinfo is None:
            moment = self.tz.localize(moment)
        return moment.astimezone(self.tz).date()

    def day_bounds(self, day: date) -> Tuple[datetime, datetime]:
        """Локальные границы дня [start, end)"""
        start = self.tz.localize(datetime.combine(day, time.min))
        end = self.tz.localize(datetime.combine(day + timedelta(days=1), time.min))
        return start, end

    def hours_until_midnight(self) -> float:
        _, midnight = self.day_bounds(self.today)
        remaining = (midnight - self.now).total_seconds() / 3600
        return max(0.0, remaining)

    def shifted(self, **kwargs) -> "EvaluationClock":
        """Новые часы, сдвинутые на timedelta(**kwargs)"""
        return EvaluationClock(now=self.now + timedelta(**kwargs), tz=self.tz)
