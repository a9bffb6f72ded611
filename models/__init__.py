from .report import Report  # noqa: F401
from .job_dead_letter import JobDeadLetter  # noqa: F401
