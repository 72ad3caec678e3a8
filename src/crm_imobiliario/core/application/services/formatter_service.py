from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

MINUTES_PER_DAY = 24 * 60


class FormatterService:
    """
    Utility service for formatting numbers, dates and currencies
    in Brazilian style (e.g. R$ 1.234,56 and DD/MM/YYYY).
    """

    def __init__(self, currency_symbol: str = "R$"):
        self.currency_symbol = currency_symbol

    def format_currency(self, amount: Decimal | float | int) -> str:
        """
        Format a numeric value as a BRL currency string,
        e.g. R$ 1.234,56
        """
        amt = Decimal(str(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        us_str = f"{amt:,.2f}"  # e.g. "1,234.56"
        integer_part, decimal_part = us_str.split(".")
        integer_brl = integer_part.replace(",", ".")
        return f"{self.currency_symbol} {integer_brl},{decimal_part}"

    def format_date(self, d: date | datetime) -> str:
        """
        Format a date (or datetime) as DD/MM/YYYY.
        """
        if isinstance(d, datetime):
            d = d.date()
        return d.strftime("%d/%m/%Y")

    @staticmethod
    def format_duration(minutes: int, hours_threshold: int = MINUTES_PER_DAY) -> str:
        """
        "90min" abaixo do limiar, senão horas arredondadas ("26h").
        Com `hours_threshold=60` reproduz o painel antigo ("2h" para 90min).
        """
        if minutes < hours_threshold:
            return f"{minutes}min"
        hours = (Decimal(minutes) / 60).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return f"{hours}h"

    def format_relative_time(self, moment: datetime, now: datetime | None = None) -> str:
        """Agora / Há N min / Há N hora(s) / Há N dia(s) / DD/MM/YYYY."""
        now = now or datetime.now(timezone.utc)
        if moment.tzinfo is None and now.tzinfo is not None:
            moment = moment.replace(tzinfo=timezone.utc)
        diff_minutes = int((now - moment).total_seconds() // 60)
        if diff_minutes < 1:
            return "Agora"
        if diff_minutes < 60:
            return f"Há {diff_minutes} min"
        diff_hours = diff_minutes // 60
        if diff_hours < 24:
            return f"Há {diff_hours} hora{'s' if diff_hours > 1 else ''}"
        diff_days = diff_hours // 24
        if diff_days < 7:
            return f"Há {diff_days} dia{'s' if diff_days > 1 else ''}"
        return self.format_date(moment)
