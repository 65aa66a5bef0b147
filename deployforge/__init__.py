"""deployforge: multi-environment deployment pipeline orchestration.

One fixed topology, Source -> Build-Infra -> Build-PPD -> Deploy-PPD
(+ manual approval) -> Build-PRD -> Deploy-PRD, built from two symmetric
environment profiles:
  - Build and deploy actions for both environments come from the same factories
  - Template file names are derived by one naming function on both sides
  - The promotion gate is an explicit state machine, decided once per run
  - Every run, stage, action and gate transition lands in a hash-chained ledger
"""

__version__ = "0.1.0"
__description__ = "Multi-environment deployment pipeline with a manual promotion gate"

from deployforge.core.builder import build_pipeline
from deployforge.core.orchestrator import Orchestrator, RunReport
from deployforge.monitor.projection import MonitorProjection

__all__ = ["Orchestrator", "RunReport", "MonitorProjection", "build_pipeline", "__version__"]
