from urllib.parse import urlparse, urlunparse, parse_qs, urlencode

from celery import Celery
from celery.signals import worker_ready
from tripwise.core.config import settings
from tripwise.core.logging import configure_logging


def _redis_url_for_celery(url: str) -> str:
    """Celery requires ssl_cert_reqs for rediss:// (e.g. Upstash TLS)."""
    if not url or not url.strip().lower().startswith("rediss://"):
        return url
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    if "ssl_cert_reqs" not in qs:
        qs["ssl_cert_reqs"] = ["CERT_NONE"]
        new_query = urlencode(qs, doseq=True)
        return urlunparse(parsed._replace(query=new_query))
    return url


_redis_url = _redis_url_for_celery(settings.REDIS_URL)

celery = Celery(
    "tripwise",
    broker=_redis_url,
    backend=_redis_url,
    include=["tripwise.tasks.jobs"],
)

celery.conf.timezone = settings.TIMEZONE
configure_logging(settings.LOG_LEVEL)

# Only the celery backend drives pricing from the worker; the API process owns it otherwise
if settings.PRICING_SCHEDULER_BACKEND == "celery":
    @worker_ready.connect
    def on_worker_ready(sender, **kwargs):
        from tripwise.tasks.jobs import update_trip_prices
        update_trip_prices.apply_async(countdown=settings.PRICING_INITIAL_DELAY_SECONDS)

    celery.conf.beat_schedule = {
        "update-trip-prices-every-15-minutes": {
            "task": "tripwise.tasks.jobs.update_trip_prices",
            "schedule": settings.PRICING_INTERVAL_SECONDS,
        },
    }
