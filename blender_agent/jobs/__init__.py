# FILE: blender_agent/jobs/__init__.py
"""Background generation jobs."""

from blender_agent.jobs.queue import GenerationJob, GenerationJobQueue, JobStatus

__all__ = ["GenerationJob", "GenerationJobQueue", "JobStatus"]
