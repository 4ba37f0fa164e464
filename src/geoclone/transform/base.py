from __future__ import annotations

from abc import ABC, abstractmethod

from geoclone.core.photo_task import TransformPlan, TransformResult


class TransformExecutor(ABC):
    """
    Performs one TransformPlan: pixel work, metadata merge and the write.

    Implementations must:
    - Write the destination atomically (temp file + rename); a failed or
      interrupted job leaves no partial destination file
    - Report per-photo failure through TransformResult(success=False) or
      TransformError, never by aborting other jobs
    - Be callable from several worker threads at once
    """

    @abstractmethod
    def execute(self, plan: TransformPlan) -> TransformResult:
        raise NotImplementedError
