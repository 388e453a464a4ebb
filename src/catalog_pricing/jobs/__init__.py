"""Jobs subpackage - batch repricing state machine and job registry."""
from .models import JobStatus, RepriceJob, RowError
from .orchestrator import RepriceOrchestrator
from .registry import JobRegistry

__all__ = ['RepriceOrchestrator', 'JobRegistry', 'JobStatus', 'RepriceJob', 'RowError']
