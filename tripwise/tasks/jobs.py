from tripwise.tasks.celery_app import celery
from tripwise.tasks import worker_jobs

@celery.task(name="tripwise.tasks.jobs.update_trip_prices")
def update_trip_prices():
    return worker_jobs.update_trip_prices()
