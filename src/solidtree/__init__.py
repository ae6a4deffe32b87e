"""solidtree: a constructive solid geometry evaluator."""

from solidtree.evaluator import CancellationToken, Outcome, SceneEvaluator, evaluate_scene
from solidtree.mesh import Mesh
from solidtree.modules import Assertion, Module, Parameter, bind_arguments, instantiate
from solidtree.profile import Profile
from solidtree.resolution import ResolutionContext

__version__ = "0.1.0"

__all__ = [
    "Assertion",
    "CancellationToken",
    "Mesh",
    "Module",
    "Outcome",
    "Parameter",
    "Profile",
    "ResolutionContext",
    "SceneEvaluator",
    "bind_arguments",
    "evaluate_scene",
    "instantiate",
]
