import secrets
from datetime import datetime
from typing import Optional

from marketplace.domain.models import utcnow


def generate_order_number(inventory_id: str, now: Optional[datetime] = None) -> str:
    """Номер заказа: INV-{4 последних символа склада}-{yyMMddHHmmss UTC}-{8 hex}.

    Случайная часть: 32 бита из secrets. Два заказа одного склада в одну
    секунду совпадут с вероятностью 2**-32; для n заказов склада в одну
    секунду оценка сверху n*(n-1)/2**33. Колонка order_number уникальна,
    так что совпадение завершится ошибкой вставки, а не дублем.
    """
    now = now or utcnow()
    inventory_part = inventory_id.replace("-", "")[-4:].upper()
    return f"INV-{inventory_part}-{now:%y%m%d%H%M%S}-{secrets.token_hex(4).upper()}"
