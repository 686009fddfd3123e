from .team_coordinator import Team

__all__ = ["Team"]
