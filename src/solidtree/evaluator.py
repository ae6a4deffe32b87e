"""Scene evaluation: one memoised post-order walk from a Node tree to a Mesh.

Transforms are accumulated on the way down and applied once to leaf
results. Boolean and hull nodes are join barriers; with ``max_workers`` set,
the caller thread hands sibling operands to a thread pool whose workers
evaluate their subtree sequentially.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, Literal

import numpy as np

from solidtree.boolean import boolean
from solidtree.errors import DimensionMismatch, EvaluationAborted, GeometryError, SolidTreeError
from solidtree.extrusion import linear_extrude, rotate_extrude
from solidtree.hull import convex_hull, hull_profiles
from solidtree.mesh import Mesh
from solidtree.nodes import BooleanOp, Empty, Extrude, Hull, ModuleInstance, Node, Primitive, Resolution, Transform
from solidtree.profile import Profile
from solidtree.resolution import DEFAULT_RESOLUTION, ResolutionContext
from solidtree.tessellation import tessellate_primitive
from solidtree.transforms import ROOT_TRANSFORM, AccumulatedTransform
from solidtree.warning_policy import WarningPolicy

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation flag shared with a running evaluation."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        if self._event.is_set():
            raise EvaluationAborted("evaluation cancelled")


class MeshCache:
    """Thread-safe memo table of evaluated subtrees."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[Hashable, Any] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Any | None:
        with self._lock:
            value = self._entries.get(key)
            if value is None:
                self.misses += 1
            else:
                self.hits += 1
            return value

    def put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries.setdefault(key, value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


@dataclass(frozen=True)
class _Context:
    resolution: ResolutionContext
    transform: AccumulatedTransform
    path: str
    pool: ThreadPoolExecutor | None = field(default=None, compare=False)

    def child(self, parent: Node, index: int, node: Node, **changes: Any) -> _Context:
        count = len(parent.children())
        prefix = f"{self.path}[{index}]" if count > 1 else self.path
        return _Context(
            resolution=changes.get("resolution", self.resolution),
            transform=changes.get("transform", self.transform),
            path=f"{prefix}/{node.label}",
            pool=changes.get("pool", self.pool),
        )


class SceneEvaluator:
    """Evaluates Node trees against a ResolutionContext.

    A single evaluator may be reused for several trees; its cache is shared
    between them.
    """

    def __init__(
        self,
        resolution: ResolutionContext = DEFAULT_RESOLUTION,
        *,
        max_workers: int | None = None,
        cancel_token: CancellationToken | None = None,
        policy: WarningPolicy | None = None,
        cache: MeshCache | None = None,
    ) -> None:
        self.resolution = resolution
        self.max_workers = max_workers
        self.cancel_token = cancel_token or CancellationToken()
        self.policy = policy
        self.cache = cache if cache is not None else MeshCache()

    # -- public API --------------------------------------------------------

    def evaluate(self, node: Node) -> Mesh:
        """Evaluate a 3D tree to a closed mesh."""
        if node.dimension == 2:
            raise DimensionMismatch(
                "tree only contains 2D profiles; use evaluate_profiles", node_path=node.label
            )
        return self._run(node, self._solid)

    def evaluate_profiles(self, node: Node) -> list[Profile]:
        """Evaluate a 2D-only tree to its list of profiles."""
        if node.dimension == 3:
            raise DimensionMismatch("tree contains 3D solids; use evaluate", node_path=node.label)
        return list(self._run(node, self._profiles))

    def _run(self, node: Node, step: Callable[[Node, _Context], Any]) -> Any:
        ctx = _Context(self.resolution, ROOT_TRANSFORM, node.label)
        if self.max_workers is not None and self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="solidtree") as pool:
                return step(node, _Context(ctx.resolution, ctx.transform, ctx.path, pool))
        return step(node, ctx)

    # -- helpers -----------------------------------------------------------

    def _check(self) -> None:
        self.cancel_token.check()

    def _memoised(self, kind: str, node: Node, ctx: _Context, compute: Callable[[], Any]) -> Any:
        self._check()
        key = (kind, node.digest, ctx.resolution.key(), ctx.transform.key())
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("cache hit: %s", ctx.path)
            return cached
        try:
            result = compute()
        except SolidTreeError as e:
            if e.node_path is None:
                e.node_path = ctx.path
            raise
        self._check()
        self.cache.put(key, result)
        return result

    def _gather(self, step: Callable[[Node, _Context], Any], jobs: list[tuple[Node, _Context]], ctx: _Context) -> list:
        """Evaluate sibling subtrees, fanning out only from the caller thread."""
        if ctx.pool is None or len(jobs) < 2:
            return [step(n, c) for n, c in jobs]
        futures: list[Future] = [
            ctx.pool.submit(step, n, _Context(c.resolution, c.transform, c.path, None)) for n, c in jobs[1:]
        ]
        try:
            first = step(*jobs[0])
            return [first] + [f.result() for f in futures]
        finally:
            for f in futures:
                f.cancel()

    @staticmethod
    def _check_dimensions(node: Node, path: str) -> None:
        dims = {c.dimension for c in node.children()} - {None}
        if len(dims) > 1:
            raise DimensionMismatch(f"{node.label} mixes 2D profiles and 3D solids", node_path=path)

    # -- 3D ----------------------------------------------------------------

    def _solid(self, node: Node, ctx: _Context) -> Mesh:
        return self._memoised("solid", node, ctx, lambda: self._compute_solid(node, ctx))

    def _compute_solid(self, node: Node, ctx: _Context) -> Mesh:
        if isinstance(node, Empty):
            return Mesh.empty()

        if isinstance(node, Primitive):
            if node.dimension != 3:
                raise DimensionMismatch(f"2D primitive {node.kind!r} used where a solid is expected")
            mesh = tessellate_primitive(node.kind, node.params, ctx.resolution, policy=self.policy)
            return ctx.transform.apply_mesh(mesh)

        if isinstance(node, Transform):
            return self._solid(node.child, ctx.child(node, 0, node.child, transform=ctx.transform.descend(node.matrix)))

        if isinstance(node, Resolution):
            pushed = ctx.resolution.push(**node.overrides)
            return self._solid(node.child, ctx.child(node, 0, node.child, resolution=pushed))

        if isinstance(node, ModuleInstance):
            return self._solid(node.body, ctx.child(node, 0, node.body))

        if isinstance(node, BooleanOp):
            self._check_dimensions(node, ctx.path)
            jobs = [(c, ctx.child(node, i, c)) for i, c in enumerate(node.children())]
            left, right = self._gather(self._solid, jobs, ctx)
            result = boolean(node.op, left, right, policy=self.policy, check_cancelled=self._check)
            logger.debug("%s: %d + %d faces -> %d", ctx.path, len(left), len(right), len(result))
            return result

        if isinstance(node, Hull):
            self._check_dimensions(node, ctx.path)
            jobs = [(c, ctx.child(node, i, c, transform=ROOT_TRANSFORM)) for i, c in enumerate(node.nodes)]
            meshes = self._gather(self._solid, jobs, ctx)
            points = [m.vertices for m in meshes if not m.is_empty]
            if not points:
                return Mesh.empty()
            local = convex_hull(np.concatenate(points, axis=0), policy=self.policy, check_cancelled=self._check)
            return ctx.transform.apply_mesh(local)

        if isinstance(node, Extrude):
            return ctx.transform.apply_mesh(self._extrude(node, ctx))

        raise GeometryError(f"cannot evaluate node {node!r}")

    def _extrude(self, node: Extrude, ctx: _Context) -> Mesh:
        child = node.profile_child
        if child.dimension == 3:
            raise DimensionMismatch(f"{node.label} needs 2D profiles, got a solid")
        profiles = self._profiles(child, ctx.child(node, 0, child, transform=ROOT_TRANSFORM))
        params = dict(node.params)
        local = ctx.resolution.push(fn=params.get("fn"), fa=params.get("fa"), fs=params.get("fs"))

        meshes = []
        for profile in profiles:
            if node.mode == "linear":
                meshes.append(
                    linear_extrude(
                        profile,
                        params["height"],
                        params.get("twist", 0.0),
                        params.get("scale", 1.0),
                        center=bool(params.get("center", False)),
                        slices=params.get("slices"),
                        resolution=local,
                    )
                )
            else:
                meshes.append(rotate_extrude(profile, params.get("angle", 360.0), resolution=local))

        if not meshes:
            return Mesh.empty()
        result = meshes[0]
        for mesh in meshes[1:]:
            self._check()
            result = boolean("union", result, mesh, policy=self.policy, check_cancelled=self._check)
        return result

    # -- 2D ----------------------------------------------------------------

    def _profiles(self, node: Node, ctx: _Context) -> tuple[Profile, ...]:
        return self._memoised("profile", node, ctx, lambda: self._compute_profiles(node, ctx))

    def _compute_profiles(self, node: Node, ctx: _Context) -> tuple[Profile, ...]:
        if isinstance(node, Empty):
            return ()

        if isinstance(node, Primitive):
            if node.dimension != 2:
                raise DimensionMismatch(f"solid primitive {node.kind!r} used where a 2D profile is expected")
            profile = tessellate_primitive(node.kind, node.params, ctx.resolution, policy=self.policy)
            return (ctx.transform.apply_profile(profile),)

        if isinstance(node, Transform):
            return self._profiles(node.child, ctx.child(node, 0, node.child, transform=ctx.transform.descend(node.matrix)))

        if isinstance(node, Resolution):
            pushed = ctx.resolution.push(**node.overrides)
            return self._profiles(node.child, ctx.child(node, 0, node.child, resolution=pushed))

        if isinstance(node, ModuleInstance):
            return self._profiles(node.body, ctx.child(node, 0, node.body))

        if isinstance(node, BooleanOp):
            self._check_dimensions(node, ctx.path)
            if node.op != "union":
                raise GeometryError(f"2D {node.op} is not supported; only union combines profiles")
            jobs = [(c, ctx.child(node, i, c)) for i, c in enumerate(node.children())]
            left, right = self._gather(self._profiles, jobs, ctx)
            return left + right

        if isinstance(node, Hull):
            self._check_dimensions(node, ctx.path)
            jobs = [(c, ctx.child(node, i, c, transform=ROOT_TRANSFORM)) for i, c in enumerate(node.nodes)]
            groups = self._gather(self._profiles, jobs, ctx)
            points = [p.points for group in groups for p in group]
            if not points:
                return ()
            local = hull_profiles(np.concatenate(points, axis=0))
            return (ctx.transform.apply_profile(local),)

        if isinstance(node, Extrude):
            raise DimensionMismatch(f"{node.label} produces a solid where a 2D profile is expected")

        raise GeometryError(f"cannot evaluate node {node!r}")


@dataclass(frozen=True)
class Outcome:
    """Result of :func:`evaluate_scene`.

    ``status`` is ``ok`` (with ``mesh`` or ``profiles``), ``failed`` (with a
    diagnostic record in ``error``) or ``aborted``.
    """

    status: Literal["ok", "failed", "aborted"]
    mesh: Mesh | None = None
    profiles: list[Profile] | None = None
    error: dict[str, str | None] | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


def evaluate_scene(
    node: Node,
    resolution: ResolutionContext = DEFAULT_RESOLUTION,
    *,
    max_workers: int | None = None,
    cancel_token: CancellationToken | None = None,
    policy: WarningPolicy | None = None,
) -> Outcome:
    """Evaluate a tree and report the outcome instead of raising."""
    evaluator = SceneEvaluator(
        resolution, max_workers=max_workers, cancel_token=cancel_token, policy=policy
    )
    try:
        if node.dimension == 2:
            return Outcome("ok", profiles=evaluator.evaluate_profiles(node))
        mesh = evaluator.evaluate(node)
    except EvaluationAborted:
        logger.info("evaluation aborted")
        return Outcome("aborted")
    except SolidTreeError as e:
        logger.error("evaluation failed: %s", e)
        return Outcome("failed", error=e.to_record())
    logger.info("evaluated %s: %d vertices, %d faces", node.label, len(mesh.vertices), len(mesh.faces))
    return Outcome("ok", mesh=mesh)
