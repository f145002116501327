# checkout/utils/retry.py
import redis
import requests
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception, retry_if_exception_type


def _transient_http(exc: BaseException) -> bool:
    # 4xx answers are final, retrying them only repeats the same answer
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code >= 500 or exc.response.status_code == 429
    return isinstance(exc, requests.RequestException)


def http_retry(attempts: int = 3):
    """Bounded exponential backoff for outbound HTTP (catalog, payment gateway)."""
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception(_transient_http),
    )


def redis_retry(attempts: int = 3):
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        retry=retry_if_exception_type(redis.RedisError),
    )
