# storefront/utils/retry.py
import logging

import redis
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from storefront.domain.errors import TransientApiError
from storefront.utils.settings import HTTP_RETRY_ATTEMPTS, HTTP_RETRY_WAIT_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


#tylko bledy sieciowe/przejsciowe, maly staly budzet (1 + 2 ponowienia)
def transient_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(HTTP_RETRY_ATTEMPTS),
        wait=wait_fixed(HTTP_RETRY_WAIT_SECONDS),
        retry=retry_if_exception_type(TransientApiError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
    )


def redis_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(redis.RedisError),
    )
