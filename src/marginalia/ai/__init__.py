"""AI provider client, prompts and the request coordinator."""

from .client import AIClient, ClientSettings
from .coordinator import AnalysisCoordinator, RequestOutcome

__all__ = ["AIClient", "AnalysisCoordinator", "ClientSettings", "RequestOutcome"]
