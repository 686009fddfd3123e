from typing import Dict, List, Any, Optional, Iterable
import structlog

from conductor.domain.context.memory.memory_store import MemoryStore
from conductor.domain.models.errors import ConstructionError, DuplicateNameError, NotFound
from conductor.domain.models.invokable import Invokable
from conductor.domain.orchestration.core.agent import Agent
from conductor.domain.orchestration.core.decision import DecisionCapability
from conductor.domain.orchestration.pipeline.pipeline import Pipeline, PipelineBuilder
from conductor.domain.orchestration.team.team_coordinator import Team
from conductor.domain.tool.tool_registry import Tool, ToolRegistry
from conductor.infrastructure.config import EngineSettings

logger = structlog.get_logger(__name__)

KINDS = ("tools", "agents", "teams", "pipelines")


class Registry:
    """Process-wide catalog of tools, agents, teams and pipelines.

    Definitions are added once at startup. Agents reference their tools and
    decision capability by name, so registration order matters: tools and
    deciders first, then agents, teams and pipelines.
    """

    def __init__(self, settings: Optional[EngineSettings] = None, memory: Optional[MemoryStore] = None):
        self.settings = settings or EngineSettings()
        self.memory = memory if memory is not None else MemoryStore(self.settings.memory)
        self.tools = ToolRegistry()
        self.deciders: Dict[str, DecisionCapability] = {}
        self.agents: Dict[str, Agent] = {}
        self.teams: Dict[str, Team] = {}
        self.pipelines: Dict[str, Pipeline] = {}

    def add_tool(self, tool: Tool) -> Tool:
        return self.tools.register(tool)

    def add_decider(self, name: str, decider: DecisionCapability) -> DecisionCapability:
        """Register a decision capability that agents bind to via llm_binding"""

        if name in self.deciders:
            raise DuplicateNameError(f"Decision capability '{name}' already registered", {"name": name})
        self.deciders[name] = decider
        return decider

    def add_agent(
        self,
        name: str,
        llm_binding: str,
        tools: Iterable[str] = (),
        description: str = "",
        task: str = ""
    ) -> Agent:
        self._ensure_unique(self.agents, name, "agent")
        if llm_binding not in self.deciders:
            raise ConstructionError(
                f"Agent '{name}' is bound to unknown decision capability '{llm_binding}'",
                {"agent": name, "llm_binding": llm_binding}
            )

        agent = Agent(
            name,
            self.deciders[llm_binding],
            tools=[self._lookup_tool(name, tool_name) for tool_name in tools],
            description=description,
            task=task,
            llm_binding=llm_binding,
            config=self.settings.agent,
            memory=self.memory
        )
        self.agents[name] = agent
        logger.info("Registered agent", agent=name, tools=agent.tools.names())
        return agent

    def add_team(
        self,
        name: str,
        agents: Iterable[str],
        manager_enabled: bool = False,
        manager_binding: Optional[str] = None,
        description: str = "",
        task: str = "",
        log_config: Optional[Dict[str, Any]] = None
    ) -> Team:
        self._ensure_unique(self.teams, name, "team")

        members = []
        for agent_name in agents:
            if agent_name not in self.agents:
                raise ConstructionError(
                    f"Team '{name}' references unknown agent '{agent_name}'",
                    {"team": name, "agent": agent_name}
                )
            members.append(self.agents[agent_name])

        manager_decider = None
        if manager_binding is not None:
            if manager_binding not in self.deciders:
                raise ConstructionError(
                    f"Team '{name}' is bound to unknown decision capability '{manager_binding}'",
                    {"team": name, "llm_binding": manager_binding}
                )
            manager_decider = self.deciders[manager_binding]

        team = Team(
            name,
            members,
            manager_enabled=manager_enabled,
            manager_decider=manager_decider,
            description=description,
            task=task,
            config=self.settings.agent,
            memory=self.memory,
            log_config=log_config
        )
        self.teams[name] = team
        logger.info("Registered team", team=name, agents=[agent.name for agent in members])
        return team

    def add_pipeline(self, pipeline: Pipeline) -> Pipeline:
        self._ensure_unique(self.pipelines, pipeline.name, "pipeline")
        self.pipelines[pipeline.name] = pipeline
        logger.info("Registered pipeline", pipeline=pipeline.name, steps=pipeline.step_names())
        return pipeline

    def pipeline(self, name: str, description: str = "") -> PipelineBuilder:
        """Start a builder; call add_pipeline with the built result"""
        return PipelineBuilder(name, description)

    def get(self, kind: str, name: str) -> Invokable:
        """Look up a component by kind ("tools", "agents", "teams", "pipelines") and name"""

        if kind == "tools":
            return self.tools.get(name)

        components = self._components(kind)
        try:
            return components[name]
        except KeyError:
            raise NotFound(f"Unknown {kind[:-1]} '{name}'", {"kind": kind, "name": name}) from None

    def list_components(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "tools": self.tools.catalog(),
            "agents": [agent.get_info() for agent in self.agents.values()],
            "teams": [team.get_info() for team in self.teams.values()],
            "pipelines": [pipeline.get_info() for pipeline in self.pipelines.values()]
        }

    def _components(self, kind: str) -> Dict[str, Any]:
        if kind == "agents":
            return self.agents
        if kind == "teams":
            return self.teams
        if kind == "pipelines":
            return self.pipelines
        raise NotFound(f"Unknown component kind '{kind}'", {"kind": kind, "expected": list(KINDS)})

    def _lookup_tool(self, agent_name: str, tool_name: str) -> Tool:
        if tool_name not in self.tools:
            raise ConstructionError(
                f"Agent '{agent_name}' references unknown tool '{tool_name}'",
                {"agent": agent_name, "tool": tool_name}
            )
        return self.tools.get(tool_name)

    @staticmethod
    def _ensure_unique(components: Dict[str, Any], name: str, label: str):
        if name in components:
            raise DuplicateNameError(f"{label.capitalize()} named '{name}' already registered", {"name": name})
