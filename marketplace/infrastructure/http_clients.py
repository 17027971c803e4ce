import httpx
import logging
import asyncio

from marketplace.application.interfaces import NotificationsService

logger = logging.getLogger(__name__)


class HTTPNotificationsClient(NotificationsService):
    """Клиент сервиса push-уведомлений"""

    def __init__(self, base_url: str, api_token: str, max_retries: int = 3, retry_delay: float = 0.5, timeout: float = 5.0):
        self._base_url = base_url
        self._api_token = api_token
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay
        self._timeout = timeout

    async def send(self, message: str, reference_id: str, idempotency_key: str, user_id: str) -> bool:
        """Отправка уведомления с повторными попытками"""
        for attempt in range(self._max_retries):
            try:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        f"{self._base_url}/api/notifications",
                        json={
                            "user_id": user_id,
                            "message": message,
                            "reference_id": reference_id,
                            "idempotency_key": idempotency_key
                        },
                        headers={"X-API-Key": self._api_token},
                        timeout=self._timeout
                    )

                    if response.status_code in (200, 201):
                        logger.info(f"Уведомление отправлено (попытка {attempt + 1})")
                        return True
                    else:
                        logger.warning(f"Уведомление вернуло статус {response.status_code}")

            except httpx.HTTPError as e:
                logger.warning(f"Ошибка отправки уведомления (попытка {attempt + 1}/{self._max_retries}): {e}")

            # Ждем перед следующей попыткой (кроме последней)
            if attempt < self._max_retries - 1:
                await asyncio.sleep(self._retry_delay)

        logger.error(f"Не удалось отправить уведомление после {self._max_retries} попыток")
        return False
