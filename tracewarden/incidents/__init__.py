"""
Incidents: event grouping, trace correlation and the incident lifecycle.
"""

from .correlator import TraceCorrelator
from .grouping import EventCorrelator, event_correlator
from .pipeline import EventPipeline, event_pipeline
from .schemas import Incident, IncidentSeverity, IncidentStatus
from .service import IncidentService, incident_service

__all__ = [
    "TraceCorrelator",
    "EventCorrelator",
    "event_correlator",
    "EventPipeline",
    "event_pipeline",
    "Incident",
    "IncidentSeverity",
    "IncidentStatus",
    "IncidentService",
    "incident_service",
]
