from tripwise.main import build_pricing

# Celery mode backs this scheduler with the redis batch lock, shared with the API and other workers
_store, _service, _scheduler = build_pricing()


def update_trip_prices() -> dict:
    """Run one pricing batch through the scheduler's tick path."""
    result = _scheduler.tick()
    if result is None:
        return {"skipped": True}
    return {
        "totalTripsProcessed": result.total_trips_processed,
        "pricesUpdated": result.prices_updated,
        "failed": len(result.failed_trip_ids),
    }
