"""
Configurable form engine.

One generic phase state machine interprets a declarative ExerciseConfig:
named metrics (angle formulas over landmarks), threshold transitions between
phases, one or more rep-completing edges, per-phase error checks and
rep-level checks. Adding an exercise is a data change in
coaches/exercise_configs.py, not a code change here.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, Mapping, Optional, Sequence, Tuple

from kinematics import (
    LANDMARK_INDEX,
    Landmark,
    angle_at,
    angle_from_vertical,
    average_visibility,
    check_orientation,
    clamp,
    get_landmark,
    midpoint,
)
from rep_comparison import compare_rep

logger = logging.getLogger(__name__)

SEVERITIES = ("info", "warning", "error")

# Form score deduction per active error
SEVERITY_PENALTIES = {"info": 5, "warning": 15, "error": 30}

METRIC_KINDS = ("joint_angle", "vertical_angle", "vertical_offset", "width_ratio")
METRIC_ARITY = {"joint_angle": 3, "vertical_angle": 2, "vertical_offset": 2, "width_ratio": 4}

CHECK_KINDS = ("bound", "symmetry", "orientation")

MAX_REP_TRACE = 600


class ExerciseConfigError(ValueError):
    """Raised when an exercise definition cannot drive the engine."""


def _point_landmarks(point: str) -> Tuple[str, ...]:
    """'left_hip' -> ('left_hip',); 'mid_hip' -> ('left_hip', 'right_hip')."""
    if point.startswith("mid_"):
        base = point[len("mid_"):]
        names = (f"left_{base}", f"right_{base}")
    else:
        names = (point,)
    for name in names:
        if name not in LANDMARK_INDEX:
            raise ExerciseConfigError(f"Unknown landmark '{name}' in point '{point}'")
    return names


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


@dataclass(frozen=True)
class MetricSpec:
    name: str
    kind: str
    points: Tuple[str, ...]
    signed: bool = False
    use_z: bool = False

    @property
    def landmarks(self) -> Tuple[str, ...]:
        names: List[str] = []
        for point in self.points:
            for name in _point_landmarks(point):
                if name not in names:
                    names.append(name)
        return tuple(names)

    def evaluate(self, landmarks: Sequence[Landmark]) -> float:
        pts = [_resolve_point(landmarks, p) for p in self.points]
        if self.kind == "joint_angle":
            return angle_at(pts[0], pts[1], pts[2], use_z=self.use_z)
        if self.kind == "vertical_angle":
            angle = angle_from_vertical(pts[0], pts[1])
            return angle if self.signed else abs(angle)
        if self.kind == "vertical_offset":
            return pts[0].y - pts[1].y
        # width_ratio
        denom = abs(pts[2].x - pts[3].x)
        return abs(pts[0].x - pts[1].x) / denom if denom > 0.01 else 1.0


def _resolve_point(landmarks: Sequence[Landmark], point: str) -> Landmark:
    names = _point_landmarks(point)
    resolved = [get_landmark(landmarks, name) or Landmark(0.0, 0.0) for name in names]
    if len(resolved) == 1:
        return resolved[0]
    return midpoint(resolved[0], resolved[1])


@dataclass(frozen=True)
class Transition:
    source: str
    target: str
    metric: str
    below: Optional[float] = None
    above: Optional[float] = None
    counts_rep: bool = False

    def is_triggered(self, value: float) -> bool:
        if self.below is not None:
            return value < self.below
        return value > self.above


@dataclass(frozen=True)
class FormCheck:
    error: str
    kind: str
    message: str
    severity: str = "warning"
    body_part: str = "body"
    metric: Optional[str] = None
    metrics: Tuple[str, ...] = ()
    min: Optional[float] = None
    max: Optional[float] = None
    max_difference: Optional[float] = None
    facing: Optional[str] = None

    @property
    def metric_names(self) -> Tuple[str, ...]:
        if self.kind == "bound":
            return (self.metric,)
        if self.kind == "symmetry":
            return self.metrics
        return ()


@dataclass(frozen=True)
class RepCheck:
    """Evaluated once per counted rep against the metric extremum of that rep."""

    error: str
    metric: str
    message: str
    peak: str = "max"
    min: Optional[float] = None
    max: Optional[float] = None
    severity: str = "info"
    body_part: str = "body"


@dataclass(frozen=True)
class ReferencePattern:
    metric: str
    values: Tuple[float, ...]
    max_distance: float = 300.0


@dataclass(frozen=True)
class ExerciseConfig:
    exercise_id: str
    name: str
    phases: Tuple[str, ...]
    initial_phase: str
    metrics: Dict[str, MetricSpec]
    transitions: Tuple[Transition, ...]
    checks: Dict[str, Tuple[FormCheck, ...]] = field(default_factory=dict)
    rep_checks: Tuple[RepCheck, ...] = ()
    min_rep_interval_s: float = 1.0
    visibility_threshold: float = 0.5
    phase_cues: Dict[str, str] = field(default_factory=dict)
    reference_pattern: Optional[ReferencePattern] = None

    @classmethod
    def from_dict(cls, exercise_id: str, data: Mapping[str, Any]) -> "ExerciseConfig":
        """Build and validate a config from catalog data."""
        try:
            phases = tuple(data["phases"])
            metrics = {
                name: MetricSpec(
                    name=name,
                    kind=entry["type"],
                    points=tuple(entry["points"]),
                    signed=bool(entry.get("signed", False)),
                    use_z=bool(entry.get("use_z", False)),
                )
                for name, entry in data.get("metrics", {}).items()
            }
            transitions = tuple(
                Transition(
                    source=t["from"],
                    target=t["to"],
                    metric=t["metric"],
                    below=_optional_float(t.get("below")),
                    above=_optional_float(t.get("above")),
                    counts_rep=bool(t.get("counts_rep", False)),
                )
                for t in data.get("transitions", [])
            )
            checks = {
                phase: tuple(
                    FormCheck(
                        error=c["error"],
                        kind=c.get("type", "bound"),
                        message=c["message"],
                        severity=c.get("severity", "warning"),
                        body_part=c.get("body_part", "body"),
                        metric=c.get("metric"),
                        metrics=tuple(c.get("metrics", ())),
                        min=_optional_float(c.get("min")),
                        max=_optional_float(c.get("max")),
                        max_difference=_optional_float(c.get("max_difference")),
                        facing=c.get("facing"),
                    )
                    for c in phase_checks
                )
                for phase, phase_checks in data.get("checks", {}).items()
            }
            rep_checks = tuple(
                RepCheck(
                    error=c["error"],
                    metric=c["metric"],
                    message=c["message"],
                    peak=c.get("peak", "max"),
                    min=_optional_float(c.get("min")),
                    max=_optional_float(c.get("max")),
                    severity=c.get("severity", "info"),
                    body_part=c.get("body_part", "body"),
                )
                for c in data.get("rep_checks", [])
            )
            reference = None
            if data.get("reference_pattern"):
                ref = data["reference_pattern"]
                reference = ReferencePattern(
                    metric=ref["metric"],
                    values=tuple(float(v) for v in ref["values"]),
                    max_distance=float(ref.get("max_distance", 300.0)),
                )
            config = cls(
                exercise_id=exercise_id,
                name=data.get("name", exercise_id),
                phases=phases,
                initial_phase=data.get("initial_phase", phases[0] if phases else ""),
                metrics=metrics,
                transitions=transitions,
                checks=checks,
                rep_checks=rep_checks,
                min_rep_interval_s=float(data.get("min_rep_interval_s", 1.0)),
                visibility_threshold=float(data.get("visibility_threshold", 0.5)),
                phase_cues=dict(data.get("phase_cues", {})),
                reference_pattern=reference,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ExerciseConfigError(f"Malformed exercise config '{exercise_id}': {e!r}") from e

        config.validate()
        return config

    def outgoing(self, phase: str) -> Tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.source == phase)

    def validate(self):
        """Reject configs that could never run correctly."""
        ex = self.exercise_id
        if not self.phases:
            raise ExerciseConfigError(f"{ex}: no phases defined")
        if len(set(self.phases)) != len(self.phases):
            raise ExerciseConfigError(f"{ex}: duplicate phase names {list(self.phases)}")
        if self.initial_phase not in self.phases:
            raise ExerciseConfigError(f"{ex}: initial phase '{self.initial_phase}' is not a phase")
        if self.min_rep_interval_s < 0:
            raise ExerciseConfigError(f"{ex}: min_rep_interval_s must be >= 0")
        if not 0.0 <= self.visibility_threshold <= 1.0:
            raise ExerciseConfigError(f"{ex}: visibility_threshold must be within [0, 1]")

        for metric in self.metrics.values():
            if metric.kind not in METRIC_KINDS:
                raise ExerciseConfigError(f"{ex}: metric '{metric.name}' has unknown type '{metric.kind}'")
            if len(metric.points) != METRIC_ARITY[metric.kind]:
                raise ExerciseConfigError(
                    f"{ex}: metric '{metric.name}' needs {METRIC_ARITY[metric.kind]} points, got {len(metric.points)}"
                )
            for point in metric.points:
                _point_landmarks(point)

        for t in self.transitions:
            if t.source not in self.phases or t.target not in self.phases:
                raise ExerciseConfigError(f"{ex}: transition {t.source}->{t.target} references an unknown phase")
            if t.source == t.target:
                raise ExerciseConfigError(f"{ex}: transition {t.source}->{t.target} is a self-loop")
            if t.metric not in self.metrics:
                raise ExerciseConfigError(f"{ex}: transition {t.source}->{t.target} uses unknown metric '{t.metric}'")
            if (t.below is None) == (t.above is None):
                raise ExerciseConfigError(
                    f"{ex}: transition {t.source}->{t.target} needs exactly one of 'below' or 'above'"
                )

        if not any(t.counts_rep for t in self.transitions):
            raise ExerciseConfigError(f"{ex}: no rep-completing transition")

        for phase in self.phases:
            if not self.outgoing(phase):
                raise ExerciseConfigError(f"{ex}: phase '{phase}' has no outgoing transition")

        reachable = {self.initial_phase}
        frontier = [self.initial_phase]
        while frontier:
            current = frontier.pop()
            for t in self.outgoing(current):
                if t.target not in reachable:
                    reachable.add(t.target)
                    frontier.append(t.target)
        unreachable = [p for p in self.phases if p not in reachable]
        if unreachable:
            raise ExerciseConfigError(f"{ex}: unreachable phases {unreachable}")

        for phase, checks in self.checks.items():
            if phase not in self.phases:
                raise ExerciseConfigError(f"{ex}: checks defined for unknown phase '{phase}'")
            for check in checks:
                self._validate_check(check)

        for rc in self.rep_checks:
            if rc.metric not in self.metrics:
                raise ExerciseConfigError(f"{ex}: rep check '{rc.error}' uses unknown metric '{rc.metric}'")
            if rc.peak not in ("max", "min"):
                raise ExerciseConfigError(f"{ex}: rep check '{rc.error}' peak must be 'max' or 'min'")
            if rc.min is None and rc.max is None:
                raise ExerciseConfigError(f"{ex}: rep check '{rc.error}' needs 'min' or 'max'")
            if rc.severity not in SEVERITIES:
                raise ExerciseConfigError(f"{ex}: rep check '{rc.error}' has invalid severity '{rc.severity}'")

        if self.reference_pattern is not None:
            if self.reference_pattern.metric not in self.metrics:
                raise ExerciseConfigError(f"{ex}: reference pattern uses unknown metric")
            if not self.reference_pattern.values:
                raise ExerciseConfigError(f"{ex}: reference pattern is empty")

    def _validate_check(self, check: FormCheck):
        ex = self.exercise_id
        if check.kind not in CHECK_KINDS:
            raise ExerciseConfigError(f"{ex}: check '{check.error}' has unknown type '{check.kind}'")
        if check.severity not in SEVERITIES:
            raise ExerciseConfigError(f"{ex}: check '{check.error}' has invalid severity '{check.severity}'")
        if check.kind == "bound":
            if check.metric not in self.metrics:
                raise ExerciseConfigError(f"{ex}: check '{check.error}' uses unknown metric '{check.metric}'")
            if check.min is None and check.max is None:
                raise ExerciseConfigError(f"{ex}: check '{check.error}' needs 'min' or 'max'")
        elif check.kind == "symmetry":
            if len(check.metrics) != 2 or any(m not in self.metrics for m in check.metrics):
                raise ExerciseConfigError(f"{ex}: symmetry check '{check.error}' needs two known metrics")
            if check.max_difference is None:
                raise ExerciseConfigError(f"{ex}: symmetry check '{check.error}' needs 'max_difference'")
        elif check.facing not in ("front", "side"):
            raise ExerciseConfigError(f"{ex}: orientation check '{check.error}' needs facing 'front' or 'side'")


def build_exercise_config(exercise_id: str) -> ExerciseConfig:
    """Look up an exercise in the catalog and validate it."""
    from coaches.exercise_configs import EXERCISE_CONFIGS

    data = EXERCISE_CONFIGS.get(exercise_id)
    if data is None:
        raise ExerciseConfigError(
            f"Unknown exercise '{exercise_id}'. Available: {', '.join(sorted(EXERCISE_CONFIGS))}"
        )
    return ExerciseConfig.from_dict(exercise_id, data)


@dataclass(frozen=True)
class FormError:
    type: str
    message: str
    severity: str
    body_part: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "message": self.message, "severity": self.severity, "body_part": self.body_part}


@dataclass(frozen=True)
class FormAnalysisResult:
    phase: str
    form_score: int
    errors: Tuple[FormError, ...]
    rep_incremented: bool
    confidence: int
    rep_count: int
    is_valid: bool = True
    feedback: Optional[str] = None
    metrics: Dict[str, float] = field(default_factory=dict)
    rep_similarity: Optional[int] = None

    @property
    def is_correct(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "form_score": self.form_score,
            "errors": [e.to_dict() for e in self.errors],
            "rep_incremented": self.rep_incremented,
            "confidence": self.confidence,
            "rep_count": self.rep_count,
            "is_valid": self.is_valid,
            "is_correct": self.is_correct,
            "feedback": self.feedback,
            "metrics": {k: round(v, 2) for k, v in self.metrics.items()},
            "rep_similarity": self.rep_similarity,
        }


class FormEngine:
    """
    Phase/rep state machine for one exercise session.

    Usage:
        engine = FormEngine(build_exercise_config("squat"))
        result = engine.process(filtered_landmarks, timestamp_seconds)
    """

    def __init__(self, config: ExerciseConfig):
        if isinstance(config, Mapping):
            config = ExerciseConfig.from_dict(config.get("id", "custom"), config)
        else:
            config.validate()
        self.config = config
        self.phase = config.initial_phase
        self.rep_count = 0
        self.last_rep_at: Optional[float] = None
        self.form_score = 100
        self._rep_trace: Dict[str, Deque[float]] = {
            name: deque(maxlen=MAX_REP_TRACE) for name in self._tracked_metrics()
        }

    def _tracked_metrics(self) -> List[str]:
        names = [rc.metric for rc in self.config.rep_checks]
        if self.config.reference_pattern is not None:
            names.append(self.config.reference_pattern.metric)
        return list(dict.fromkeys(names))

    def required_landmarks(self, phase: Optional[str] = None) -> Tuple[str, ...]:
        """Landmarks needed to evaluate a phase's exit transitions and checks."""
        phase = phase or self.phase
        metric_names: List[str] = [t.metric for t in self.config.outgoing(phase)]
        for check in self.config.checks.get(phase, ()):
            metric_names.extend(check.metric_names)
        names: List[str] = []
        for metric in dict.fromkeys(metric_names):
            for lm in self.config.metrics[metric].landmarks:
                if lm not in names:
                    names.append(lm)
        return tuple(names)

    def process(self, landmarks: Sequence[Landmark], timestamp: float) -> FormAnalysisResult:
        config = self.config
        required = self.required_landmarks()
        visibility = average_visibility(landmarks, required)
        confidence = int(round(clamp(visibility * 100.0, 0.0, 100.0)))

        if visibility < config.visibility_threshold:
            return FormAnalysisResult(
                phase=self.phase,
                form_score=self.form_score,
                errors=(),
                rep_incremented=False,
                confidence=confidence,
                rep_count=self.rep_count,
                is_valid=False,
                feedback=None,
            )

        values: Dict[str, float] = {}

        def metric(name: str) -> float:
            if name not in values:
                values[name] = config.metrics[name].evaluate(landmarks)
            return values[name]

        previous_phase = self.phase
        fired: Optional[Transition] = None
        for transition in config.outgoing(self.phase):
            if transition.is_triggered(metric(transition.metric)):
                fired = transition
                break

        rep_incremented = False
        if fired is not None:
            self.phase = fired.target
            if fired.counts_rep:
                if self.last_rep_at is None or timestamp - self.last_rep_at >= config.min_rep_interval_s:
                    self.rep_count += 1
                    self.last_rep_at = timestamp
                    rep_incremented = True
                else:
                    logger.debug(
                        "%s: rep edge %s->%s within cooldown, not counted",
                        config.exercise_id, fired.source, fired.target,
                    )

        # Rep trace covers every valid frame away from the starting phase
        if previous_phase == config.initial_phase and self.phase != config.initial_phase:
            for trace in self._rep_trace.values():
                trace.clear()
        if self.phase != config.initial_phase or rep_incremented:
            for name, trace in self._rep_trace.items():
                trace.append(metric(name))

        errors: List[FormError] = []
        for check in config.checks.get(self.phase, ()):
            error = self._run_check(check, landmarks, metric)
            if error is not None:
                errors.append(error)

        similarity = None
        rep_feedback = None
        if rep_incremented:
            errors.extend(self._run_rep_checks())
            if config.reference_pattern is not None:
                ref = config.reference_pattern
                comparison = compare_rep(list(self._rep_trace[ref.metric]), ref.values, ref.max_distance)
                similarity = comparison.score
                rep_feedback = f"{comparison.feedback} {comparison.score}%"
            for trace in self._rep_trace.values():
                trace.clear()

        penalty = sum(SEVERITY_PENALTIES[e.severity] for e in errors)
        self.form_score = int(clamp(100 - penalty, 0, 100))

        if errors:
            worst = max(errors, key=lambda e: SEVERITIES.index(e.severity))
            feedback = worst.message
        elif rep_feedback:
            feedback = rep_feedback
        else:
            feedback = config.phase_cues.get(self.phase)

        return FormAnalysisResult(
            phase=self.phase,
            form_score=self.form_score,
            errors=tuple(errors),
            rep_incremented=rep_incremented,
            confidence=confidence,
            rep_count=self.rep_count,
            is_valid=True,
            feedback=feedback,
            metrics=dict(values),
            rep_similarity=similarity,
        )

    def _run_check(self, check: FormCheck, landmarks: Sequence[Landmark], metric) -> Optional[FormError]:
        failed = False
        if check.kind == "bound":
            value = metric(check.metric)
            failed = (check.min is not None and value < check.min) or (check.max is not None and value > check.max)
        elif check.kind == "symmetry":
            left, right = (metric(name) for name in check.metrics)
            failed = abs(left - right) > check.max_difference
        else:
            failed = check_orientation(landmarks, check.facing) is not None
        if not failed:
            return None
        return FormError(type=check.error, message=check.message, severity=check.severity, body_part=check.body_part)

    def _run_rep_checks(self) -> List[FormError]:
        errors = []
        for rc in self.config.rep_checks:
            trace = self._rep_trace.get(rc.metric)
            if not trace:
                continue
            peak = max(trace) if rc.peak == "max" else min(trace)
            if (rc.min is not None and peak < rc.min) or (rc.max is not None and peak > rc.max):
                errors.append(FormError(type=rc.error, message=rc.message, severity=rc.severity, body_part=rc.body_part))
        return errors
