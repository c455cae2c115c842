"""
Celery worker that executes pipeline runs.

Modules:
    celery_app: Celery application and configuration
    tasks: execute_pipeline task (one run per task, own database session)

Usage:
    celery -A worker.celery_app worker -Q pipelines --concurrency=4
"""
