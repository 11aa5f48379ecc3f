"""HTTP surface."""

from beaconjobs.http.app import create_jobs_app

__all__ = ["create_jobs_app"]
