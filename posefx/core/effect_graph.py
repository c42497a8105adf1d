from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from posefx.core.audio import AudioNode, AudioUnitError, OutputSink, TrackSource, create_unit

logger = logging.getLogger(__name__)

CONNECTED = "connected"
DISCONNECTED = "disconnected"


@dataclass
class EffectSpec:
    name: str
    kind: str
    parameter_ranges: Dict[str, Tuple[float, float]] = field(default_factory=dict)
    enabled: bool = False


@dataclass
class EffectNode:
    spec: EffectSpec
    unit: Optional[AudioNode] = None
    state: str = DISCONNECTED

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def routable(self) -> bool:
        return self.unit is not None


@dataclass
class ConnectFailure:
    name: str
    error: str


@dataclass
class RebuildReport:
    chain: List[str]
    active: List[str]
    failures: List[ConnectFailure] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "chain": list(self.chain),
            "active": list(self.active),
            "failures": [{"name": f.name, "error": f.error} for f in self.failures],
        }


class EffectGraph:
    """Fixed-order effect chain between a track source and the output sink.

    Only enabled nodes are wired, in declared order; every other node has no
    connections. ``lock`` guards the topology for both rewiring and rendering.
    """

    STABLE = "stable"
    REBUILDING = "rebuilding"

    def __init__(self, source: TrackSource, sink: OutputSink, nodes: Sequence[EffectNode]):
        names = [node.name for node in nodes]
        if len(set(names)) != len(names):
            raise ValueError(f"duplicate effect names: {names}")
        self.source = source
        self.sink = sink
        self.nodes: List[EffectNode] = list(nodes)
        self._by_name: Dict[str, EffectNode] = {node.name: node for node in self.nodes}
        self.lock = threading.RLock()
        self.state = self.STABLE
        self.last_report: Optional[RebuildReport] = None

    @classmethod
    def from_specs(
        cls,
        source: TrackSource,
        sink: OutputSink,
        specs: Iterable[EffectSpec],
        unit_factory: Callable[[str, str, int], Optional[AudioNode]] = create_unit,
    ) -> "EffectGraph":
        nodes = []
        for spec in specs:
            unit = unit_factory(spec.kind, spec.name, source.sample_rate)
            accepted = (unit if unit is not None else source).params
            unknown = sorted(set(spec.parameter_ranges) - set(accepted))
            if unknown:
                raise ValueError(f"effect {spec.name} has no parameters {unknown}")
            nodes.append(EffectNode(spec=spec, unit=unit))
        return cls(source, sink, nodes)

    @property
    def names(self) -> List[str]:
        return [node.name for node in self.nodes]

    def node(self, name: str) -> EffectNode:
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"unknown effect: {name}") from None

    def enabled_names(self) -> List[str]:
        return [node.name for node in self.nodes if node.spec.enabled]

    def connected_names(self) -> List[str]:
        return [node.name for node in self.nodes if node.state == CONNECTED]

    def chain(self) -> List[str]:
        """Names of the routed units in signal order, walked from the source."""
        by_unit = {id(node.unit): node.name for node in self.nodes if node.routable}
        out: List[str] = []
        current: AudioNode = self.source
        seen = set()
        while current.outputs and id(current) not in seen:
            seen.add(id(current))
            current = current.outputs[0]
            if current is self.sink:
                break
            out.append(by_unit.get(id(current), current.name))
        return out

    def set_enabled(self, names: Iterable[str]) -> bool:
        wanted = set(names)
        for name in wanted:
            self.node(name)
        changed = False
        for node in self.nodes:
            enabled = node.name in wanted
            if node.spec.enabled != enabled:
                node.spec.enabled = enabled
                changed = True
        return changed

    def _disconnect_all(self) -> None:
        self.source.disconnect()
        for node in self.nodes:
            if node.unit is not None:
                node.unit.isolate()
            node.state = DISCONNECTED
        self.sink.isolate()

    def _fail(self, node: EffectNode, exc: Exception, failures: List[ConnectFailure]) -> None:
        logger.warning("effect %s failed to connect: %s", node.name, exc)
        if node.unit is not None:
            node.unit.isolate()
        node.state = DISCONNECTED
        failures.append(ConnectFailure(name=node.name, error=str(exc)))

    def rebuild(self) -> RebuildReport:
        with self.lock:
            self.state = self.REBUILDING
            try:
                self._disconnect_all()
                failures: List[ConnectFailure] = []
                routed: List[EffectNode] = []
                active: List[str] = []
                prev: AudioNode = self.source
                for node in self.nodes:
                    if not node.spec.enabled:
                        continue
                    if not node.routable:
                        node.state = CONNECTED
                        active.append(node.name)
                        continue
                    try:
                        node.unit.open()
                        prev.connect(node.unit)
                    except AudioUnitError as exc:
                        self._fail(node, exc, failures)
                        continue
                    node.state = CONNECTED
                    routed.append(node)
                    active.append(node.name)
                    prev = node.unit

                while True:
                    try:
                        prev.connect(self.sink)
                        break
                    except AudioUnitError as exc:
                        if not routed:
                            logger.error("source could not reach the output: %s", exc)
                            failures.append(ConnectFailure(name=self.sink.name, error=str(exc)))
                            break
                        failed = routed.pop()
                        active.remove(failed.name)
                        self._fail(failed, exc, failures)
                        prev = routed[-1].unit if routed else self.source

                if "playback_rate" in self.source.params:
                    self.source.set_param("playback_rate", 1.0)

                report = RebuildReport(
                    chain=[node.name for node in routed],
                    active=list(active),
                    failures=failures,
                )
                self.last_report = report
                logger.info(
                    "effect chain rebuilt: %s",
                    " -> ".join([self.source.name, *report.chain, self.sink.name]),
                )
                return report
            finally:
                self.state = self.STABLE

    def apply(self, name: str, params: Dict[str, float]) -> bool:
        """Set parameters on a connected node; disconnected nodes are left alone."""
        with self.lock:
            node = self.node(name)
            if node.state != CONNECTED:
                return False
            target = node.unit if node.routable else self.source
            for param, value in params.items():
                target.set_param(param, value)
            return True

    def snapshot(self) -> dict:
        with self.lock:
            effects = []
            for node in self.nodes:
                if node.routable:
                    params = dict(node.unit.params)
                else:
                    params = {
                        key: self.source.params[key]
                        for key in node.spec.parameter_ranges
                        if key in self.source.params
                    }
                effects.append(
                    {
                        "name": node.name,
                        "kind": node.spec.kind,
                        "enabled": node.spec.enabled,
                        "state": node.state,
                        "params": params,
                        "parameter_ranges": {
                            key: [lo, hi] for key, (lo, hi) in node.spec.parameter_ranges.items()
                        },
                    }
                )
            return {
                "state": self.state,
                "chain": self.chain(),
                "effects": effects,
                "last_failures": (
                    self.last_report.as_dict()["failures"] if self.last_report else []
                ),
            }
