from celery import shared_task

from .convergence import ConvergenceLoop


@shared_task(bind=True)
def run_preproduction(self, job_id: str):
    """Background pre-production for one job; spawned once at submission."""
    result = ConvergenceLoop(job_id).run()
    return {
        "ok": result.ok,
        "iterations": result.iterations,
        "error": result.error,
        "completionToken": result.completion_token,
    }
