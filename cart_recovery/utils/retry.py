# cart_recovery/utils/retry.py
import stripe
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type


def stripe_retry():
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception_type((stripe.APIConnectionError, stripe.RateLimitError)),
    )


def code_collision_retry(exc_type):
    #a fresh code is generated on every attempt, no need to wait
    return retry(
        reraise=True,
        stop=stop_after_attempt(3),
        retry=retry_if_exception_type(exc_type),
    )
