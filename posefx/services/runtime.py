from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from posefx.core.audio import OutputSink, TrackSource
from posefx.core.control_loop import ControlLoop
from posefx.core.effect_graph import EffectGraph, EffectSpec
from posefx.core.events import EventBus
from posefx.core.mapping import ParameterMapper
from posefx.core.session import SessionManager
from posefx.core.smoothing import FeatureSmoother
from posefx.core.throttle import FrameThrottle
from posefx.models.config import AppConfig
from posefx.services.config_store import ConfigStore


@dataclass
class RuntimeContext:
    config_store: ConfigStore
    event_bus: EventBus
    graph: EffectGraph
    control_loop: ControlLoop
    session_manager: SessionManager


def build_mapper(cfg: AppConfig) -> ParameterMapper:
    return ParameterMapper({effect.name: effect.rules() for effect in cfg.effects})


def build_effect_graph(cfg: AppConfig, mapper: ParameterMapper) -> EffectGraph:
    source = TrackSource(name="source", sample_rate=cfg.audio.sample_rate, loop=cfg.audio.loop)
    sink = OutputSink(name="output", sample_rate=cfg.audio.sample_rate)
    specs = [
        EffectSpec(
            name=effect.name,
            kind=effect.kind,
            parameter_ranges=mapper.parameter_ranges(effect.name),
            enabled=effect.enabled,
        )
        for effect in cfg.effects
    ]
    return EffectGraph.from_specs(source, sink, specs)


def apply_tracking_config(runtime: RuntimeContext, cfg: AppConfig) -> None:
    loop = runtime.control_loop
    loop.throttle.interval = cfg.tracking.throttle_interval
    if cfg.tracking.expected_persons != loop.throttle.expected_persons:
        loop.set_expected_persons(cfg.tracking.expected_persons)
    loop.smoother.alpha = cfg.tracking.angle_smoothing_alpha
    runtime.session_manager.cfg = cfg


def build_runtime(config_path: Path) -> RuntimeContext:
    config_store = ConfigStore(config_path)
    cfg = config_store.config
    event_bus = EventBus()
    mapper = build_mapper(cfg)
    graph = build_effect_graph(cfg, mapper)
    control_loop = ControlLoop(
        None,
        graph,
        mapper,
        throttle=FrameThrottle(
            interval=cfg.tracking.throttle_interval,
            expected_persons=cfg.tracking.expected_persons,
        ),
        smoother=FeatureSmoother(cfg.tracking.angle_smoothing_alpha),
        event_bus=event_bus,
    )
    control_loop.sync()
    session_manager = SessionManager(cfg, graph, control_loop)
    return RuntimeContext(
        config_store=config_store,
        event_bus=event_bus,
        graph=graph,
        control_loop=control_loop,
        session_manager=session_manager,
    )
