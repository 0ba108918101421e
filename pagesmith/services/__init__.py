"""Generation pipeline services."""

from .assembler import assemble
from .deployment_guard import DeploymentGuard
from .generation_runner import GenerationRunner
from .refinement import QualityRefiner, RefinementConfig
from .section_generator import SectionGenerator
from .section_planner import SectionPlanner
from .site_generator import SiteGenerator
from .trigger_controller import TriggerController

__all__ = [
    "assemble",
    "DeploymentGuard",
    "GenerationRunner",
    "QualityRefiner",
    "RefinementConfig",
    "SectionGenerator",
    "SectionPlanner",
    "SiteGenerator",
    "TriggerController",
]
