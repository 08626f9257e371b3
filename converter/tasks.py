from huey.contrib.djhuey import task

from converter.handlers import handle_update


@task()
def process_update(update):
    """
    Background task for one Telegram update.

    Each update gets its own task, so conversions run independently on the
    consumer's worker threads.
    """
    result = handle_update(update)
    if result is None:
        return None
    return {'job_id': result.job.job_id, 'ok': result.ok,
            'failure': result.failure.value if result.failure else None}
