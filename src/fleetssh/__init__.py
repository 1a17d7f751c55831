"""fleetssh: Run one command on many SSH hosts with bounded concurrency."""

from logging import NullHandler, getLogger

from .benchmark import CalibrationResult, CalibrationStep, Calibrator
from .config import Config, OutputConfig, RunConfig, load_config
from .errors import ConfigurationError, PipelineError, Stage, UpstreamCode
from .executor import Executor
from .hosts import HostAddress, load_hosts, load_kv_hosts
from .pipeline import Response, SessionPipeline, SessionState
from .pools import AdmissionPool, AdmissionPools
from .sink import ProgressCounters, ResultSink, SinkSummary, write_results

getLogger(__name__).addHandler(NullHandler())

__all__ = [
    "AdmissionPool",
    "AdmissionPools",
    "CalibrationResult",
    "CalibrationStep",
    "Calibrator",
    "Config",
    "ConfigurationError",
    "Executor",
    "HostAddress",
    "OutputConfig",
    "PipelineError",
    "ProgressCounters",
    "Response",
    "ResultSink",
    "RunConfig",
    "SessionPipeline",
    "SessionState",
    "SinkSummary",
    "Stage",
    "UpstreamCode",
    "load_config",
    "load_hosts",
    "load_kv_hosts",
    "write_results",
]
