from tracewarden.workers.analysis_worker import AnalysisWorker, analysis_worker
from tracewarden.workers.base_worker import BaseWorker

__all__ = ["AnalysisWorker", "analysis_worker", "BaseWorker"]
